from typing import Callable, Iterable, Mapping, Optional, Sequence, Union

from sqlalchemy.orm import Session

from .chain.rpc import BlockEntropyClient
from .config import LotterySettings
from .lottery.commitment import commit, normalize_participant
from .lottery.ledger import LedgerListener, RoundLedger
from .models import Lottery, LotteryEntry, WinnerRecord

RevealSource = Union[
    Mapping[str, Sequence[bool]],
    Callable[[LotteryEntry], Sequence[bool]],
]


def create_lottery(
    session: Session,
    name: str,
    owner: str,
    *,
    now: int,
    settings: Optional[LotterySettings] = None,
    listeners: Optional[Iterable[LedgerListener]] = None,
) -> RoundLedger:
    """Persist a new lottery, open its first round and return its ledger.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    name : str
        Unique machine friendly name of the lottery.
    owner : str
        Identity allowed to draw and start rounds.
    now : int
        Logical time at which round 1 opens.
    settings : Optional[LotterySettings]
        Fee and payout configuration. When omitted it is read from the
        environment via :meth:`LotterySettings.from_env`.
    listeners : Optional[Iterable[LedgerListener]]
        Callables notified of every ledger event, including the start of
        round 1.

    Returns
    -------
    RoundLedger
        Ledger bound to the new lottery, with round 1 active.
    """

    if Lottery.get_by_name(session, name) is not None:
        raise ValueError(f"A lottery named '{name}' already exists.")

    settings = settings or LotterySettings.from_env()
    lottery = Lottery(
        name=name,
        owner=normalize_participant(owner),
        fee_per_ticket=settings.fee_per_ticket,
        winner_share_numerator=settings.winner_share_numerator,
        share_denominator=settings.share_denominator,
    )
    session.add(lottery)
    session.flush()

    ledger = RoundLedger(
        session,
        lottery,
        commitment_key=settings.commitment_key,
        listeners=listeners,
    )
    ledger.start_new_round(now, caller=lottery.owner)
    return ledger


def open_ledger(
    session: Session,
    name: str,
    *,
    settings: Optional[LotterySettings] = None,
    listeners: Optional[Iterable[LedgerListener]] = None,
) -> RoundLedger:
    """Return a ledger for the existing lottery called ``name``."""

    lottery = Lottery.get_by_name(session, name)
    if lottery is None:
        raise ValueError(f"No lottery named '{name}'.")
    settings = settings or LotterySettings.from_env()
    return RoundLedger(
        session,
        lottery,
        commitment_key=settings.commitment_key,
        listeners=listeners,
    )


def submit_entry(
    ledger: RoundLedger,
    choices: Sequence[bool],
    payment: int,
    participant: str,
    now: int,
) -> LotteryEntry:
    """Commit ``choices`` for ``participant`` and record the entry.

    This is the "encrypted submission" path: the raw choices never reach the
    ledger, only their commitment (keyed with the ledger's commitment key)
    does. The caller keeps ``choices`` to reveal them if the entry wins.
    """

    commitment = commit(choices, participant, key=ledger.commitment_key)
    return ledger.record_entry(commitment, payment, participant, now)


def _resolve_reveal(reveal: RevealSource, entry: LotteryEntry) -> Sequence[bool]:
    if callable(reveal):
        return reveal(entry)
    try:
        return reveal[entry.participant]
    except KeyError as exc:
        raise ValueError(
            f"No reveal available for winning participant '{entry.participant}'"
        ) from exc


def run_draw(
    ledger: RoundLedger,
    *,
    caller: str,
    block_time: int,
    entropy: int,
    reveal: RevealSource,
    next_round_at: Optional[int] = None,
) -> WinnerRecord:
    """Draw, finalize and optionally roll over the current round.

    The workflow performs the following steps:

    1. Select the winning index from ``block_time``, ``entropy`` and the
       round secret.
    2. Obtain the winner's original choices from ``reveal``, either a
       mapping keyed by normalized participant or a callable taking the
       winning entry.
    3. Finalize the round, verifying the reveal against the stored
       commitment and computing the payout.
    4. When ``next_round_at`` is given, start the next round at that time.

    Returns
    -------
    WinnerRecord
        Record of the finalized round.
    """

    index = ledger.draw(block_time, entropy, caller=caller)
    round_ = ledger.current_round
    assert round_ is not None
    winning_entry = round_.entries[index]
    revealed = _resolve_reveal(reveal, winning_entry)
    record = ledger.finalize(index, revealed, caller=caller)
    if next_round_at is not None:
        ledger.start_new_round(next_round_at, caller=caller)
    return record


def make_entropy_client(
    settings: Optional[LotterySettings] = None, *, timeout: int = 30
) -> BlockEntropyClient:
    """Return a :class:`BlockEntropyClient` for the node in ``settings.rpc_url``.

    Raises
    ------
    ValueError
        If no RPC URL is configured.
    """

    settings = settings or LotterySettings.from_env()
    if not settings.rpc_url:
        raise ValueError("No RPC URL configured; set ETH_RPC_URL")
    return BlockEntropyClient(settings.rpc_url, timeout=timeout)


def run_draw_from_chain(
    ledger: RoundLedger,
    client: BlockEntropyClient,
    *,
    caller: str,
    reveal: RevealSource,
    block: Union[int, str] = "latest",
    start_next_round: bool = True,
) -> WinnerRecord:
    """Run :func:`run_draw` with inputs read from a block of the chain.

    The next round, when started, opens at the block's timestamp.
    """

    inputs = client.block_entropy(block)
    return run_draw(
        ledger,
        caller=caller,
        block_time=inputs.timestamp,
        entropy=inputs.entropy,
        reveal=reveal,
        next_round_at=inputs.timestamp if start_next_round else None,
    )


def winner_history(session: Session, name: str) -> list[WinnerRecord]:
    """Return the winners of every finalized round of lottery ``name``."""

    lottery = Lottery.get_by_name(session, name)
    if lottery is None:
        raise ValueError(f"No lottery named '{name}'.")
    return RoundLedger(session, lottery).winner_history()
