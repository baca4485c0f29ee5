"""
Reporting layer: logging setup and the narrative summary of a QualityReport.
"""
