"""Run-time half of routecli: parse the command line, dispatch, execute."""

from routecli.runtime.dispatcher import DispatchResult, dispatch
from routecli.runtime.invocation import Invocation, parse_invocation

__all__ = ["DispatchResult", "Invocation", "dispatch", "parse_invocation"]
