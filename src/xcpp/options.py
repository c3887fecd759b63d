from dataclasses import dataclass
from typing import Literal

DiagFormat = Literal["human", "json"]


@dataclass(frozen=True)
class FrontendOptions:
    include_dirs: tuple[str, ...] = ()
    quote_include_dirs: tuple[str, ...] = ()
    system_include_dirs: tuple[str, ...] = ()
    defines: tuple[str, ...] = ()
    undefs: tuple[str, ...] = ()
    trigraphs: bool = False
    max_include_depth: int = 200
    diag_format: DiagFormat = "human"
    warn_as_error: bool = False

    def __post_init__(self) -> None:
        if self.diag_format not in {"human", "json"}:
            raise ValueError(f"Unsupported diagnostic format: {self.diag_format}")
        if self.max_include_depth < 1:
            raise ValueError(f"Invalid include depth limit: {self.max_include_depth}")

    def quoted_search_path(self) -> tuple[str, ...]:
        return (*self.quote_include_dirs, *self.include_dirs, *self.system_include_dirs)

    def angled_search_path(self) -> tuple[str, ...]:
        return (*self.include_dirs, *self.system_include_dirs)


def normalize_options(options: FrontendOptions | None) -> FrontendOptions:
    return FrontendOptions() if options is None else options
