"""
Interview Dispatch Service

Automates interview-scheduling communication for a recruiting pipeline:
- Chat assistant collects interview details from the recruiter
- Extracts the invitation fields from the conversation
- Generates and sends branded invitation and reminder emails
- Tracks candidate confirmation state through one-shot confirmation links
"""

__version__ = "1.0.0"
