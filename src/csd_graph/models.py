from __future__ import annotations

import enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


class Rate(enum.IntEnum):
    """Update rate of a value, ordered from least to most frequent."""

    INIT = 0
    CONTROL = 1
    AUDIO = 2

    @classmethod
    def from_expr(cls, expr: object) -> Rate:
        if isinstance(expr, cls):
            return expr
        if isinstance(expr, str):
            lower = expr.lower()
            token_map = {"i": cls.INIT, "k": cls.CONTROL, "a": cls.AUDIO}
            if lower in token_map:
                return token_map[lower]
            return cls[expr.upper()]
        return cls(int(expr))  # type: ignore[call-overload]

    @property
    def token(self) -> str:
        return "ika"[self.value]


class EffectClass(str, enum.Enum):
    PURE = "pure"
    EFFECTFUL = "effectful"


class ResourceClass(str, enum.Enum):
    """Resource-dependency class of an effectful primitive."""

    NONE = "none"
    ALLOCATE = "allocate"
    READ = "read"
    WRITE = "write"


class Shape(str, enum.Enum):
    """Static shape of an operand, used to pick a composition strategy."""

    SCALAR = "scalar"
    TUPLE = "tuple"
    EFFECT_SCALAR = "effect_scalar"
    EFFECT_TUPLE = "effect_tuple"

    @property
    def wrapped(self) -> bool:
        return self in (Shape.EFFECT_SCALAR, Shape.EFFECT_TUPLE)


# ---------------------------------------------------------------------------
# Terms
# ---------------------------------------------------------------------------


class Constant(BaseModel):
    """Immutable literal. Carries no rate tag; as an operand it reads as init-rate."""

    model_config = ConfigDict(frozen=True)

    value: Union[float, str]

    def key(self) -> tuple[str, Union[float, str]]:
        tag = "s" if isinstance(self.value, str) else "f"
        return (tag, self.value)


# An operand is either a node index in the owning graph or a literal.
Operand = Union[int, Constant]


class SignalNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["signal"] = "signal"
    op: str
    operands: tuple[Operand, ...] = ()
    rate: Rate
    effect: EffectClass = EffectClass.PURE
    resource: ResourceClass = ResourceClass.NONE
    token: int | None = None
    forced: bool = False  # created by an explicit rate override

    @model_validator(mode="after")
    def _check_token(self) -> SignalNode:
        if self.effect is EffectClass.EFFECTFUL and self.token is None:
            raise ValueError(f"effectful node '{self.op}' requires an effect token")
        if self.effect is EffectClass.PURE and self.token is not None:
            raise ValueError(f"pure node '{self.op}' cannot carry an effect token")
        return self


class TableNode(BaseModel):
    """Static lookup table, always an init-rate side-effect-free leaf."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["table"] = "table"
    gen: Union[int, str]
    params: tuple[float, ...] = ()
    size: int
    guard: bool = False

    op: Literal["ftgen"] = "ftgen"
    operands: tuple[Operand, ...] = ()
    rate: Literal[Rate.INIT] = Rate.INIT
    effect: Literal[EffectClass.PURE] = EffectClass.PURE
    token: None = None
    forced: bool = False


# Discriminated union of everything the node store holds
Node = Annotated[Union[SignalNode, TableNode], Field(discriminator="kind")]


class EffectToken(BaseModel):
    """Identity of one effectful occurrence; ordered by issue serial."""

    model_config = ConfigDict(frozen=True)

    serial: int
    stream: str  # uuid of the issuing sequencer

    def __lt__(self, other: EffectToken) -> bool:
        return self.serial < other.serial


# ---------------------------------------------------------------------------
# Primitive registration contract
# ---------------------------------------------------------------------------


class PrimitiveSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    arity: int = Field(ge=0)
    rates: tuple[Union[Rate, None], ...] = ()  # per-operand requirement, None = any
    effect: EffectClass = EffectClass.PURE
    resource: ResourceClass = ResourceClass.NONE
    output_rate: Union[Rate, None] = None  # None = inferred from operands
    outputs: int = Field(default=1, ge=1)
    commutative: bool = False

    @field_validator("rates", mode="before")
    @classmethod
    def _parse_rates(cls, value: object) -> object:
        if isinstance(value, (list, tuple)):
            return tuple(None if r is None else Rate.from_expr(r) for r in value)
        return value

    @field_validator("output_rate", mode="before")
    @classmethod
    def _parse_output_rate(cls, value: object) -> object:
        return None if value is None else Rate.from_expr(value)

    @model_validator(mode="after")
    def _check_contract(self) -> PrimitiveSpec:
        if self.rates and len(self.rates) != self.arity:
            raise ValueError(
                f"primitive '{self.name}': {len(self.rates)} rate requirements "
                f"for arity {self.arity}"
            )
        if self.effect is EffectClass.PURE and self.resource is not ResourceClass.NONE:
            raise ValueError(f"primitive '{self.name}': pure primitives cannot own resources")
        return self

    def requirement(self, position: int) -> Rate | None:
        if not self.rates:
            return None
        return self.rates[position]


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class RenderConfig(BaseModel):
    sample_rate: float = Field(default=44100.0, gt=0)
    ksmps: int = Field(default=64, gt=0)
    canonicalize_commutative: bool = True
    prune_unreachable: bool = True


class InstructionRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    ref: str


Arg = Union[InstructionRef, Constant]


class Instruction(BaseModel):
    id: str
    op: str
    rate: Rate
    effect: EffectClass = EffectClass.PURE
    token: int | None = None
    args: list[Arg] = []


class RenderResult(BaseModel):
    name: str = "instr"
    sample_rate: float = 44100.0
    ksmps: int = 64
    instructions: list[Instruction] = []
    outputs: list[list[Arg]] = []
    merged: int = 0

    def by_id(self) -> dict[str, Instruction]:
        return {ins.id: ins for ins in self.instructions}
