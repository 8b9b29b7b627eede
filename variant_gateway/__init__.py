"""Region-aware ClinVar variant search and caching gateway.

Modules:

- regions:     genomic intervals, x-coordinates, padded CDS region merging
- clients:     async search-backend client with exhaustive search-after paging
- consequences:representative transcript consequence per query context
- cache:       TTL store + single-flight entity cache
- throttle:    once-per-window refresher for expensive metadata checks
- queries:     ClinVar variant queries and liftover lookups
"""

__version__ = "0.1.0"
