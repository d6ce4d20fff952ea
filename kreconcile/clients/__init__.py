"""
All the routines to talk to Kubernetes API.

The low-level requests with the transient error retries are in :mod:`api`;
the per-operation adapters are in their own modules; the connected handle
that brings them all together for a specific API server is in :mod:`transport`.
"""
