from psycopg import IsolationLevel

from phenomena import registry
from phenomena.backends import Backend
from phenomena.base import SHINS_RO
from phenomena.directives import COMMIT, increment_counter, read_counter
from phenomena.scenario import Expectation, Pause, Scenario, Send

select_off_days = read_counter(SHINS_RO.name)
increase_off_days = increment_counter(SHINS_RO.name)


def expect(level_a: IsolationLevel, level_b: IsolationLevel, backend: Backend) -> Expectation:
    dirty = level_a == IsolationLevel.READ_UNCOMMITTED and backend.supports_dirty_reads
    return Expectation(
        reads_a=(SHINS_RO.counter, SHINS_RO.counter + 1 if dirty else SHINS_RO.counter),
        final_counter=SHINS_RO.counter + 1,
    )


SCENARIO = registry.register(Scenario(
    key="dirty-read",
    steps=(
        Send("A", select_off_days),
        Pause(),
        Send("B", increase_off_days),
        Pause(),
        Send("A", select_off_days),
        Send("A", COMMIT),
        Send("B", COMMIT),
    ),
    expect=expect,
    description="""
B increments the counter and, before B commits, A reads it again.
Only at `read uncommitted` does A see B's uncommitted +1; every other level shows A the committed value.
PostgreSQL runs `read uncommitted` as `read committed`, so there A never sees the dirty value.
MySQL InnoDB turns every select into a locking read at `serializable`; B's update then waits for A's commit.

┌───┐               ┌───┐              ┌────┐
│ A │               │ B │              │ DB │
└─┬─┘               └─┬─┘              └──┬─┘
  │                   │                   │
  ├──────────select off_days─────────────►│  A sees 0
  │                   │                   │
  │                   ├─off_days + 1─────►│  not committed
  │                   │                   │
  ├──────────select off_days─────────────►│  A sees 1 only at read uncommitted
  │                   │                   │
  ├───────commit──────┼──────────────────►│
  │                   │                   │
  │                   ├────commit────────►│  final off_days = 1
  │                   │                   │
""",
))
