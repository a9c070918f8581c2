"""Business logic services.

Services contain all variant, inventory and stock logic and are called by
routes and scripts. They take the DB session explicitly and leave the commit
to the caller (repair sweeps excepted, which commit per item).
"""
