"""Tests for report module.

Test Files and Coverage:
========================

| Test File                  | Test Classes                 | Tested Constructs                          | Tested Functionalities                        |
|----------------------------|------------------------------|--------------------------------------------|-----------------------------------------------|
| test_report_store.py       | ReportStoreTest              | ReportStore, ReportManifest, LayerSummary  | Link records, manifest round trip, ordering   |
"""
