"""
Adapters for the backend collaborator: the REST client and the change feed.
"""
