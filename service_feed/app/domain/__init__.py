"""
Feed domain: posts, reactions and profile summaries, plus the pure
reaction-toggle used for optimistic updates.
"""
