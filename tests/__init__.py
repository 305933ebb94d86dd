"""Tests for layerdedup.

Test Files and Coverage:
========================

| Test File                  | Test Classes                 | Tested Constructs                          | Tested Functionalities                        |
|----------------------------|------------------------------|--------------------------------------------|-----------------------------------------------|
| test_digest.py             | DigestTest                   | get_digest(), ContentDigest                | Registry lookup, sizes, chunked computation   |
| test_dedup_index.py        | DedupIndexTest               | DedupIndex                                 | Record, lookup, duplicates, forget            |
| test_filter.py             | LayerFilterTest              | LayerFilter.run()                          | Linking, threshold, pass-through, shadowing   |
|                            | LayerFilterStreamTest        | LayerFilter.opener()                       | Streaming, failure delivery, cancellation     |
| test_layer.py              | FileLayerTest                | FileLayer                                  | gzip detection, media types, open failures    |
|                            | WriteLayerTest               | write_layer(), copy_blob()                 | diff_id/digest, deterministic compression     |
| test_settings.py           | SettingsTest                 | Settings                                   | TOML loading, defaults, validation            |
| test_deduplicator.py       | DeduplicatorTest             | Deduplicator                               | Output naming, reports, logging settings      |
| test_cli.py                | CliTest                      | layerdedup_main()                          | filter/describe commands, exit codes          |

Subpackages: archive/ (reader, rewriter), utils/ (pipe, throttler), report/ (report store),
commands/ (filter_layers, describe).
"""
