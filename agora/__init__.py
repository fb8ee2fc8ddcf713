"""
Agora — Gamification & Leaderboards for a Corporate Community Platform
=======================================================================
Turns everyday community work (articles, forum threads, events) into
points, levels, achievements and periodic leaderboards.  The rest of the
platform calls into this package in-process after each content action.

Package layout::

    agora/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Level formula + presentation constants
    ├── errors.py          # NotFoundError / ValidationError / ConflictError
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default settings + starter achievements
    ├── engine/
    │   ├── periods.py     # Period → [start, end) resolver (shared)
    │   ├── achievements.py # Criteria evaluation (pure)
    │   ├── leaderboard.py # Scoring, ranking, rank queries (pure)
    │   ├── points.py      # Action names, rewards, amount validation
    │   └── cache.py       # In-memory settings/achievement cache
    ├── services/
    │   ├── activity_service.py    # ActivityCounter
    │   ├── points_service.py      # PointsLedger
    │   ├── achievement_service.py # AchievementEngine + catalogue
    │   ├── leaderboard_service.py # Generator + query
    │   ├── admin_service.py       # Audit log helpers
    │   ├── settings_service.py    # Settings CRUD
    │   └── scheduler.py           # Periodic leaderboard refresh
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine / cache / admin JWT dependencies
        └── routes/
            ├── public.py  # Leaderboards, user stats, catalogue
            └── admin.py   # Bonus, reset, grants, settings, audit
"""

__version__ = "0.1.0"
