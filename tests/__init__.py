"""
ABRISK Test Suite

Structure:
- unit/: sampling grid, affine skew, extraction/back-projection, detector, matching
- integration/: end-to-end runs of the pipeline driver on synthetic images
"""
