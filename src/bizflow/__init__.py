"""bizflow: appointment → quotation → invoice → receipt workflow core.

    models.py       entity records, statuses, money
    lifecycle.py    status state machine + draft derivations (pure)
    reminders.py    due follow-ups (pure)
    export.py       CSV export of a snapshot
    booking.py      availability port + appointment form state
    session.py      actor identity lifecycle + session context
    store/          entity store, subscriptions, document backends
    core.py         Workspace hub
    daemon.py       always-on mode
"""
