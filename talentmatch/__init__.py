"""
TalentMatch - semantic candidate matching.

Embeds candidate profiles and job descriptions with a sentence-embedding
model and retrieves the best-fit candidates by vector similarity combined
with structured filters.
"""

__version__ = "0.1.0"
__app_name__ = "TalentMatch"
