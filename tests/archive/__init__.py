"""Tests for the archive module.

Test Files and Coverage:
========================

| Test File                  | Test Classes                 | Tested Constructs                          | Tested Functionalities                        |
|----------------------------|------------------------------|--------------------------------------------|-----------------------------------------------|
| test_reader.py             | ArchiveReaderTest            | ArchiveReader, Entry                       | Formats, raw headers, end of archive, errors  |
|                            | PaxRecordsTest               | parse_pax_records()                        | Record parsing, malformed records             |
| test_rewriter.py           | ArchiveRewriterTest          | ArchiveRewriter, build_link_header()       | Verbatim copies, link headers, trailer        |
"""
