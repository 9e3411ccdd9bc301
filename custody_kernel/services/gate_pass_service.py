"""
GatePassMinter -- single-use gate-pass code allocation.

Responsibility:
    Draws candidate numbers from an injected CodeSource, formats them as
    ``GP-####`` (prefix and width from CustodyPolicy) and returns the first
    code not held by any currently open request.

Architecture position:
    Kernel > Services.  Called by RequestLifecycleEngine on approval, while
    the orchestrator holds the global ``gate-pass:mint`` lock, so no two
    approvals can pick the same free code.

Failure modes:
    - GatePassExhaustedError after ``max_mint_attempts`` draws without a
      free, in-range code.
"""

from sqlalchemy.orm import Session

from custody_kernel.domain.identifiers import CodeSource, RandomCodeSource
from custody_kernel.domain.policy import CustodyPolicy
from custody_kernel.exceptions import GatePassExhaustedError
from custody_kernel.logging_config import get_logger
from custody_kernel.selectors.request_selector import RequestSelector

logger = get_logger("services.gate_pass")


class GatePassMinter:

    def __init__(
        self,
        session: Session,
        policy: CustodyPolicy | None = None,
        code_source: CodeSource | None = None,
    ):
        self._session = session
        self._policy = policy or CustodyPolicy()
        self._source = code_source or RandomCodeSource()

    def mint(self) -> str:
        """Return a code unique among non-terminal requests right now."""
        taken = RequestSelector(self._session).open_gate_codes()
        low, high = self._policy.code_range

        for attempt in range(1, self._policy.max_mint_attempts + 1):
            number = self._source.draw(low, high)
            if not low <= number <= high:
                logger.warning(
                    "gate_pass_candidate_out_of_range",
                    extra={"candidate": number, "low": low, "high": high},
                )
                continue
            code = self._policy.format_code(number)
            if code in taken:
                logger.debug("gate_pass_collision", extra={"code": code, "attempt": attempt})
                continue
            logger.info("gate_pass_minted", extra={"code": code, "attempts": attempt})
            return code

        logger.error(
            "gate_pass_exhausted",
            extra={"attempts": self._policy.max_mint_attempts, "open_codes": len(taken)},
        )
        raise GatePassExhaustedError(self._policy.max_mint_attempts, len(taken))
