"""Tests for command implementation modules.

Test Files and Coverage:
========================

| Test File                  | Test Classes                 | Tested Constructs                          | Tested Functionalities                        |
|----------------------------|------------------------------|--------------------------------------------|-----------------------------------------------|
| test_filter_layers.py      | FilterLayersTest             | FilterLayersProcessor, LayerTask           | Concurrent layers, failures, fail-fast        |
| test_describe.py           | DescribeTest                 | do_describe()                              | Summary table, links listing, layer selection |
|                            | PrintFormattedTableTest      | print_formatted_table()                    | Table formatting, alignment                   |
"""
