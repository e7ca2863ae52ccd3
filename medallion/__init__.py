"""
Anomaly medallion pipeline.

Ingests equipment anomaly spreadsheets into Bronze, cleans them into Silver,
scores them through the prediction service and upserts actionable anomalies
into Gold.
"""

__version__ = '1.0.0'
