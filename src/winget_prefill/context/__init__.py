"""Remote sources feeding the pre-fill pipeline.

These modules fetch data from GitHub (release detection and the package
registry) and expose it as per-field tasks the resolver can await.
"""
