from psycopg import IsolationLevel

from phenomena import registry
from phenomena.backends import Backend
from phenomena.base import SHINS_RO
from phenomena.directives import COMMIT, increment_counter, read_counter
from phenomena.scenario import Expectation, Pause, Scenario, Send


def expect(level_a: IsolationLevel, level_b: IsolationLevel, backend: Backend) -> Expectation:
    repeatable = level_a in (IsolationLevel.REPEATABLE_READ, IsolationLevel.SERIALIZABLE)
    return Expectation(
        reads_a=(SHINS_RO.counter, SHINS_RO.counter if repeatable else SHINS_RO.counter + 1),
        final_counter=SHINS_RO.counter + 1,
    )


SCENARIO = registry.register(Scenario(
    key="non-repeatable-read",
    steps=(
        Send("A", read_counter(SHINS_RO.name)),
        Pause(),
        Send("B", increment_counter(SHINS_RO.name)),
        Send("B", COMMIT),
        Pause(),
        Send("A", read_counter(SHINS_RO.name)),
        Send("A", COMMIT),
    ),
    expect=expect,
    description="""
A reads the counter twice; in between, B increments it and commits.
At `read uncommitted` and `read committed` A's two reads differ.
At `repeatable read` and `serializable` A keeps reading the value of its first read.
On MySQL at `serializable` A's first read is a locking read: B's update waits for A's commit,
while A waits for B's commit to be sent. The run then ends with a receive timeout, or hangs without one.

┌───┐               ┌───┐              ┌────┐
│ A │               │ B │              │ DB │
└─┬─┘               └─┬─┘              └──┬─┘
  │                   │                   │
  ├──────────select off_days─────────────►│  A sees 0
  │                   │                   │
  │                   ├─off_days + 1─────►│
  │                   │                   │
  │                   ├────commit────────►│
  │                   │                   │
  ├──────────select off_days─────────────►│  A sees 1, or 0 from repeatable read up
  │                   │                   │
  ├───────commit──────┼──────────────────►│
  │                   │                   │
""",
))
