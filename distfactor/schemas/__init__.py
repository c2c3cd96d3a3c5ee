from .messages import (
    Assign, Endpoint, FactorFound, Failed, FermatState, Message, NewClient,
    NewValue, PollardState, Register, RegisterDispatcher, Run, SearchState,
    Start, Terminate, TrialState, decode_message, encode_message,
)

__all__ = [
    "Assign", "Endpoint", "FactorFound", "Failed", "FermatState", "Message",
    "NewClient", "NewValue", "PollardState", "Register", "RegisterDispatcher",
    "Run", "SearchState", "Start", "Terminate", "TrialState",
    "decode_message", "encode_message",
]
