"""
The reconciliation layer: the workflows over the K8s API client.

It brings the remote resources towards their desired state step by step,
and tracks the last known state of every resource it has touched.
"""
