"""Report module for filtering results.

This package contains:
- store: ReportStore, ReportManifest and LayerSummary for persisting the outcome of a run
"""
