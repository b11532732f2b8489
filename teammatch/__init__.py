"""
Teammatch: skill-aware matching of students, groups and topics.

This package contains submodules for building skill profiles, ranking
candidates and auto-resolving a semester's team formation.  Each
submodule implements one step of the flow:

1. **profile** – Turn raw skill data (JSON documents, tag lists or free
   text) into a canonical `SkillProfile` with a coarse primary role,
   and extract ranked skills from long documents with an LLM.
2. **rank** – Score candidates deterministically (`baseline`) and
   optionally let an LLM rerank the top of the list (`rerank`).  The
   reranker is an enhancement only: any failure falls back to the
   baseline order.
3. **resolve** – For a semester (and optionally a major), place every
   unplaced student into an open group or a newly formed one, then give
   every full group a topic.  The result is a plan; `commit` writes it.
4. **cli** – Command line entry point wiring the above together.

Scoring weights and run switches live in `config`; typed failures in
`errors`.
"""

from importlib import metadata

try:
    __version__ = metadata.version("teammatch")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0"
