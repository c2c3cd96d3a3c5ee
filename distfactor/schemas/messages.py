"""
Wire messages exchanged between the coordinator, dispatchers and workers.

Every message is a pydantic model tagged by its ``intent``; the ``Message``
union is discriminated on that tag so each intent carries only the fields it
needs. Search state is a second tagged union (``SearchState``) discriminated
on ``algorithm``.
"""

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from ..constants import FERMAT_ATTEMPT_BUDGET, Kind
from ..exceptions import ProtocolError
from ..utils.number_utils import exact_int_sqrt


class Endpoint(BaseModel):
    """A reachable host/port pair advertised for callbacks."""
    model_config = ConfigDict(frozen=True)

    host: str = Field(..., min_length=1, description="Host name or address")
    port: int = Field(..., ge=0, le=65535, description="TCP port")

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


# ==================== Search state ====================

class TrialState(BaseModel):
    """Closed interval of candidate divisors for trial division."""
    algorithm: Literal["trial"] = "trial"
    kind: Kind = Field(..., description="trial-up or trial-down")
    lower_bound: int = Field(..., ge=1)
    upper_bound: int = Field(..., ge=1)

    @model_validator(mode="after")
    def check_bounds(self) -> "TrialState":
        if self.kind not in (Kind.TRIAL_UP, Kind.TRIAL_DOWN):
            raise ValueError(f"Trial state cannot carry kind {self.kind.value}")
        if self.lower_bound > self.upper_bound:
            raise ValueError(
                f"lower_bound {self.lower_bound} exceeds upper_bound {self.upper_bound}"
            )
        return self


class FermatState(BaseModel):
    """Starting value and per-call attempt budget for Fermat's method."""
    algorithm: Literal["fermat"] = "fermat"
    start_value: int = Field(..., ge=1)
    attempt_budget: int = Field(FERMAT_ATTEMPT_BUDGET, ge=1)

    @property
    def kind(self) -> Kind:
        return Kind.FERMAT


class PollardState(BaseModel):
    """
    Resumable Pollard p-1 state.

    ``accumulated_power`` is base^((exponent_cursor - 1)!) mod number, so a
    search can continue at ``exponent_cursor`` without redoing exponents.
    """
    algorithm: Literal["pollard"] = "pollard"
    base: int = Field(..., ge=2)
    accumulated_power: int = Field(..., ge=0)
    exponent_cursor: int = Field(1, ge=1)
    lower_bound: int = Field(1, ge=1)
    upper_bound: int = Field(..., ge=1)
    last_bound_used: Optional[int] = None
    upper_is_too_large: bool = False

    @property
    def kind(self) -> Kind:
        return Kind.POLLARD_P1


SearchState = Annotated[
    Union[TrialState, FermatState, PollardState],
    Field(discriminator="algorithm"),
]


def _check_state_against_number(number: int, state: Any) -> None:
    """Reject states that violate the search-space invariants for ``number``."""
    root = exact_int_sqrt(number)[0]
    if isinstance(state, TrialState) and state.upper_bound > max(root, state.lower_bound):
        raise ValueError(
            f"Trial upper_bound {state.upper_bound} exceeds isqrt({number}) = {root}"
        )
    if isinstance(state, FermatState) and state.start_value < root + 1:
        raise ValueError(
            f"Fermat start_value {state.start_value} is below isqrt({number}) + 1"
        )


# ==================== Messages ====================

class NewClient(BaseModel):
    """Worker -> coordinator: a new worker wants an algorithm."""
    intent: Literal["new-client"] = "new-client"
    callback: Endpoint


class Assign(BaseModel):
    """Coordinator -> worker: the kind to run, and where its dispatcher lives."""
    intent: Literal["assign"] = "assign"
    kind: Kind
    promote: bool = Field(False, description="Also host the dispatcher for this kind")
    dispatcher: Optional[Endpoint] = None

    @model_validator(mode="after")
    def check_dispatcher(self) -> "Assign":
        if not self.promote and self.dispatcher is None:
            raise ValueError("A non-promoted assignment must name its dispatcher")
        return self


class Register(BaseModel):
    """Worker -> dispatcher: first contact, adds the worker to the table."""
    intent: Literal["register"] = "register"
    kind: Kind
    callback: Endpoint


class RegisterDispatcher(BaseModel):
    """Dispatcher -> coordinator: a dispatcher for ``kind`` is listening."""
    intent: Literal["register-subserver"] = "register-subserver"
    kind: Kind
    callback: Endpoint


class Start(BaseModel):
    """Begin the run. Operator -> coordinator carries no number."""
    intent: Literal["start"] = "start"
    number: Optional[int] = Field(None, ge=1)


class NewValue(BaseModel):
    """Coordinator -> dispatcher: the search target changed."""
    intent: Literal["new-value"] = "new-value"
    number: int = Field(..., ge=1)


class Run(BaseModel):
    """Dispatcher -> worker: search this state of ``number``."""
    intent: Literal["run"] = "run"
    number: int = Field(..., ge=1)
    state: SearchState

    @model_validator(mode="after")
    def check_state(self) -> "Run":
        _check_state_against_number(self.number, self.state)
        return self

    @property
    def kind(self) -> Kind:
        return self.state.kind

    def report_failure(self, state: Any, callback: Endpoint) -> "Failed":
        """Build the ``failed`` report carrying the resumable state."""
        return Failed(number=self.number, state=state, callback=callback)

    def report_factor(self, factor: int, callback: Endpoint) -> "FactorFound":
        """Build the ``factor-found`` report. Rejects non-divisors."""
        return FactorFound(number=self.number, kind=self.kind, factor=factor, callback=callback)


class Failed(BaseModel):
    """Worker -> dispatcher: no factor in the sub-range, here is where I stopped."""
    intent: Literal["failed"] = "failed"
    number: int = Field(..., ge=1)
    state: SearchState
    callback: Endpoint

    @model_validator(mode="after")
    def check_state(self) -> "Failed":
        _check_state_against_number(self.number, self.state)
        return self

    @property
    def kind(self) -> Kind:
        return self.state.kind


class FactorFound(BaseModel):
    """Worker -> dispatcher -> coordinator: a factor of ``number``."""
    intent: Literal["factor-found"] = "factor-found"
    number: int = Field(..., ge=1)
    kind: Kind
    factor: int = Field(..., ge=1)
    callback: Optional[Endpoint] = None

    @model_validator(mode="after")
    def check_factor(self) -> "FactorFound":
        if self.number % self.factor != 0:
            raise ValueError(f"{self.factor} is not a factor of {self.number}")
        return self


class Terminate(BaseModel):
    """Shut down. Relayed downward at most once by each recipient."""
    intent: Literal["terminate"] = "terminate"
    reason: Optional[str] = None


Message = Annotated[
    Union[
        NewClient, Assign, Register, RegisterDispatcher, Start,
        NewValue, Run, Failed, FactorFound, Terminate,
    ],
    Field(discriminator="intent"),
]

MESSAGE_ADAPTER: TypeAdapter = TypeAdapter(Message)

KNOWN_INTENTS = frozenset({
    "new-client", "assign", "register", "register-subserver", "start",
    "new-value", "run", "failed", "factor-found", "terminate",
})


def encode_message(message: BaseModel) -> Dict[str, Any]:
    """Serialize a message to a JSON-compatible dict."""
    return message.model_dump(mode="json")


def decode_message(payload: Any) -> Optional[BaseModel]:
    """
    Decode a wire payload into a message.

    Args:
        payload: JSON-compatible dict received from a peer

    Returns:
        The decoded message, or None if the intent is not one we recognize

    Raises:
        ProtocolError: If the payload is not a dict or a known intent is malformed
    """
    if not isinstance(payload, dict):
        raise ProtocolError(f"Expected a JSON object, got {type(payload).__name__}")
    if payload.get("intent") not in KNOWN_INTENTS:
        return None
    try:
        return MESSAGE_ADAPTER.validate_python(payload)
    except ValidationError as e:
        raise ProtocolError(f"Malformed {payload.get('intent')} message: {e}") from e


def copy_message(message: BaseModel) -> BaseModel:
    """Round-trip a message through its wire form, yielding a fresh value object."""
    return MESSAGE_ADAPTER.validate_json(message.model_dump_json())
