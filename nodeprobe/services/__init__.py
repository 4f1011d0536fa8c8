"""Probing services: conversion, scheduling, probing and batch orchestration."""

from nodeprobe.services.node_converter import SUPPORTED_TYPES, CoreNodeConverter, NodeConverter
from nodeprobe.services.orchestrator import BatchOrchestrator, BatchReport, BatchResult
from nodeprobe.services.probe_executor import ProbeExecutor
from nodeprobe.services.scheduler import Scheduler

__all__ = [
    "SUPPORTED_TYPES",
    "BatchOrchestrator",
    "BatchReport",
    "BatchResult",
    "CoreNodeConverter",
    "NodeConverter",
    "ProbeExecutor",
    "Scheduler",
]
