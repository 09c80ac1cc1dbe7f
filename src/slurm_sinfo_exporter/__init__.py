"""Slurm sinfo Prometheus Exporter.

Prometheus exporter for the SLURM workload manager that samples the node
inventory (``sinfo --json`` or the SLURM REST API) and exports per-partition
and cluster-wide CPU, memory and node state metrics.
"""

__version__ = "0.1.0"
