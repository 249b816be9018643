"""
Reconciliation of nginx upstream groups against Kubernetes Endpoints.

- differ.py: desired vs. actual backend sets
- admin.py: nginx admin interface (status, add, remove)
- watch.py: Endpoints watch consumer
- policy.py: failure policy table
- reconciler.py: applies a diff to one upstream group
- loop.py: drives the receive, query, diff, apply cycle
"""
