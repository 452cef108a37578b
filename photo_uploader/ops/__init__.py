"""Use-case / operations layer.

Pure decision logic invoked by the backend: batch filtering, crop sequencing
and crop-rect geometry. Nothing here owns Qt state.
"""
