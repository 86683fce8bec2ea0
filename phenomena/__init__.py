# importing the scenario modules registers them
from phenomena import dirty_read, non_repeatable_read  # noqa: F401
