"""
Core business logic modules for TalentMatch.

Submodules:
- matching: Candidate retrieval, embedding backfill and stored job shortlists
"""
