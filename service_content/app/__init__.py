"""
Content access layer package.

Decides when and how often each external content source may be called and
where results are remembered afterwards:
- Rate limiting: per-endpoint sliding windows with priority queues
- Caching: memory, persistent key-value store and optional remote rows
- Batching: debounced grouping of co-arriving requests
- Retries with exponential backoff for flaky origins

Structure:
- app.main: ContentAccessLayer wiring and lifecycle.
- app.adapters: key-value store, row store and HTTP origin clients.
- app.caching: tiered cache, query cache and request batcher.
- app.ratelimit: sliding-window rate limiter.
- app.monitoring: in-process performance monitor.
- app.content: Quran, hadith, dua and translation orchestrators.
"""
