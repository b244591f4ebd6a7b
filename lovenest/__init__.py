"""
LoveNest API package.

A FastAPI service that stores a couple's notes, bucket list, timeline,
memories, moods and other journal collections, each scoped to the user who
created the entries.
"""
