"""Prometheus metrics for the Posts service."""

from prometheus_client import Counter, Histogram

posts_created = Counter(
    "postboard_posts_created_total",
    "Posts successfully created",
)
votes_cast = Counter(
    "postboard_votes_total",
    "Votes applied to posts",
    ["direction"],
)
images_stored = Counter(
    "postboard_images_stored_total",
    "Image uploads accepted (including duplicates of stored content)",
)
request_seconds = Histogram(
    "postboard_request_seconds",
    "Request handling time by route",
    ["method", "route"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)
