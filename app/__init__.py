"""MovieCat FastAPI application package.

``app.main`` builds the FastAPI application; the season reconciliation and
recommendation engines live in ``app.services``.
"""
