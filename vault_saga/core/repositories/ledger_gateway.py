from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..domain.entities.ledger_entities import ConfirmationResult, PairKey
from ..domain.entities.operation_intent import TxHandle
from ..domain.enums.saga_enums import OperationKind


class LedgerGateway(ABC):
    """
    Boundary to the remote ledger. Reads are plain request/response;
    writes return a handle whose outcome arrives later via await_confirmation.
    """

    @abstractmethod
    async def read_allowance(self, asset_id: str, owner_id: str, spender_id: str) -> int:
        raise NotImplementedError

    @abstractmethod
    async def submit_authorization(self, asset_id: str, spender_id: str, amount: int) -> TxHandle:
        """
        approve(spender, amount) on the asset. Raises UserDeclinedError if signing is refused.
        """
        raise NotImplementedError

    @abstractmethod
    async def submit_operation(self, kind: OperationKind, params: Dict[str, Any]) -> TxHandle:
        """
        Submit the dependent operation. Raises UserDeclinedError if signing is refused.
        """
        raise NotImplementedError

    @abstractmethod
    async def await_confirmation(self, handle: TxHandle) -> ConfirmationResult:
        raise NotImplementedError

    @abstractmethod
    async def read_resource_identity(self, pair_key: PairKey) -> Optional[str]:
        """
        Pool id registered on-chain for the pair, or None when there is none.
        """
        raise NotImplementedError

    @abstractmethod
    async def read_quote(self, resource_id: str, asset_id: str, amount: int) -> int:
        raise NotImplementedError
