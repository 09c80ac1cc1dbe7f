"""Collectors package for SLURM metrics.

Contains collector implementations for different SLURM resource types.
Each collector module provides a generate_samples function and its metric
DESCRIPTORS that can be composed with the SlurmCollector class.
"""
