from .deduplicator import Deduplicator
from .digest import ContentDigest, get_digest
from .errors import (
    LayerDedupError, MalformedArchive, SourceReadFailure, SinkWriteFailure, UpstreamResolutionFailure, PassCancelled,
)
from .filter import LayerFilter, LinkDecision, PassStats
from .index.dedup_index import DedupIndex
from .layer import FileLayer, LayerOutput, LayerSource
from .report.store import LayerSummary, ReportManifest, ReportStore
from .settings import Settings
