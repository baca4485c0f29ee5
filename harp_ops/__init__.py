"""
HARP data-quality operations.

Provides completeness classification, run-length segmentation, longitude
imputation, cadence-grid coverage, binned summaries and matplotlib plotting
for SHARP time-series tables.
"""
