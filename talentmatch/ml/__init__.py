"""
Machine Learning modules for TalentMatch.

Submodules:
- embeddings: Text embedding and candidate vector retrieval
"""
