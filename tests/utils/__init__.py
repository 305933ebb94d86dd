"""Tests for utility modules.

Test Files and Coverage:
========================

| Test File                  | Test Classes                 | Tested Constructs                          | Tested Functionalities                        |
|----------------------------|------------------------------|--------------------------------------------|-----------------------------------------------|
| test_pipe.py               | PipeTest                     | Pipe, PipeReader, PipeWriter               | Ordering, backpressure, errors, cancellation  |
| test_throttler.py          | ThrottlerTest                | Throttler                                  | Concurrency limit, slot release               |
"""
