"""
Agora — Community Q&A Engagement Engine
========================================
Ranks and searches questions, fans domain events out to notification
inboxes, runs poll voting and expiry, and tracks time-windowed progress
toward gamified challenges.  Everything else a Q&A community needs
(rendering, auth, editing) sits outside this package and talks to it
through the FastAPI surface in :mod:`agora.api`.

Package layout::

    agora/
    ├── __main__.py        # python -m agora (uvicorn)
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Inbox wording + UTC helpers
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default challenge seeder
    ├── engine/
    │   ├── ranking.py     # Feed ordering + search parsing (pure)
    │   ├── challenges.py  # Sliding-window progress arithmetic (pure)
    │   └── results.py     # Result / error taxonomy
    ├── services/
    │   ├── recipients.py           # Per-type recipient resolvers
    │   ├── notification_service.py # Fan-out + inbox
    │   ├── poll_service.py         # Voting + expiry sweep
    │   ├── challenge_service.py    # Progress tracking + reward unlocks
    │   ├── question_service.py     # Votes, views, tags, answers, comments
    │   ├── community_service.py    # Membership + content placement
    │   └── scheduler.py            # Periodic poll sweep loop
    └── api/
        ├── main.py        # FastAPI app
        ├── errors.py      # Result → HTTP status mapping
        └── routes/        # REST endpoints
"""

__version__ = "0.1.0"
