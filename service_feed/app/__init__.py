"""
Feed coordination service package.

Sits between UI event handlers and the hosted backend, providing:
- Deduplication of concurrent identical reads
- A short-lived cache of profile summaries
- Optimistic reaction toggles with rollback on failure

Structure:
- app.main: FastAPI app, routes and lifecycle wiring.
- app.coordination: request queue, entity cache, collection store, mutation coordinator.
- app.adapters: backend REST client and change feed.
- app.domain: feed models and the pure reaction toggle.
- app.profiles / app.timeline: read and write services built on the above.
"""
