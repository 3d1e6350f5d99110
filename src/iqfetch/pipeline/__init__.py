"""Bounded concurrent fetch-aggregate pipeline.

Items are pulled from a queue by a fixed pool of worker threads, outcomes
flow back through an unbounded queue to a single collector, and the
collected rows are committed to disk with a temp-file-plus-rename write.
"""
