"""
Irtiqa - Case Safety and Case Ownership Service

The safety core of a consultation marketplace:
- Scores submissions for crisis indicators
- Escalates crisis alerts through a bounded acknowledge/resolve lifecycle
- Notifies administrators and the responsible consultant
- Manages case teams (invite, approve, refer, remove) with a single owner
"""

__version__ = "0.1.0"
