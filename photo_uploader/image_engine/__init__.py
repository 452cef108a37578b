"""Image engine: decoding, classification, previews and metrics.

Usage:
    from photo_uploader.image_engine.classifier import AspectClassifier

    classifier = AspectClassifier(previews, target_ratio=1.0, tolerance=0.01)
    classifier.batch_classified.connect(on_batch)
    classifier.submit(photos)
"""
