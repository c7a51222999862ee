"""
Gamification engine for GradeQuest

This package implements the weekly achievement rotation and points economy:
- Week boundary arithmetic (week_clock)
- Achievement catalogs (catalog)
- No-repeat weekly selection (weekly_selector)
- Live progress evaluation (progress_evaluator)
- Grade XP and spendable points (xp_system)
- Login and weekly-completion streaks (streak_system)
"""
