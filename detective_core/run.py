#!/usr/bin/env python3
"""
Quick runner for Case Linkage Service
=====================================

Usage:
    python -m detective_core.run
    # or
    python detective_core/run.py
"""

import uvicorn

if __name__ == "__main__":
    print("Starting Case Linkage Service...")
    print("API docs: http://localhost:8000/docs")
    print("Health:   http://localhost:8000/health")
    print()

    uvicorn.run(
        "detective_core.api:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
