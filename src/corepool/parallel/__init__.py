"""Parallel execution machinery for corepool.

This package provides the components behind Engine.run:

- Worker: A persistent worker process and its request/reply channel
- WorkerPool: Starts, grows and tears down the set of workers
- Dispatcher: Sends work items to workers and joins the results
- partition / DistributionStrategy: Split input into per-worker chunks
- ResultAggregator: Collects task outcomes by task index
"""

from __future__ import annotations
