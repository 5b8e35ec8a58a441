"""solrwrapper: a thin Solr facade for embedded and remote search cores."""

from solrwrapper.config import SolrConfig
from solrwrapper.logging import bind_request_id, configure_logging, get_request_id
from solrwrapper.models import (
    SearchResult,
    SolrConnectionError,
    SolrError,
    SolrIndexError,
    SolrQueryError,
    escape_query,
)
from solrwrapper.wrapper import SolrWrapper, search

__version__ = "0.3.0"

__all__ = [
    "SearchResult",
    "SolrConfig",
    "SolrConnectionError",
    "SolrError",
    "SolrIndexError",
    "SolrQueryError",
    "SolrWrapper",
    "__version__",
    "bind_request_id",
    "configure_logging",
    "escape_query",
    "get_request_id",
    "search",
]
