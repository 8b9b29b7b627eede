from .search import (  # noqa: F401
    SearchBackendError,
    SearchClient,
    fetch_all_search_results,
    make_http_client,
)
