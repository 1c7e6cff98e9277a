"""
Detective Core - Cross-Record Case Linkage
==========================================

A service core for:
1. Scoring similarity between case records
2. Detecting serial-offender, geographic, temporal and other cross-case patterns
3. Building multi-stage reasoning chains over an LLM
4. Learning from verified case outcomes

LLM and database are optional.
"""

__version__ = "1.0.0"
