from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal, Optional, Tuple

import numpy as np
import pandas as pd

from .latent import LatentFitResult

logger = logging.getLogger(__name__)

# Non-numeric entries that labs use for "too numerous to count"
_TNTC_TOKENS = ("TNTC", "tntc", ">")


def _read_table(path: Path, sheet_name: str | int = 0) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Input file does not exist: {path}")
    if path.suffix.lower() in (".xlsx", ".xls"):
        return pd.read_excel(path, sheet_name=sheet_name)
    return pd.read_csv(path)


def load_fib_table(
    path: str | Path,
    event_col: str = "Event",
    categories: Optional[list[str]] = None,
    sheet_name: str | int = 0,
    tntc_value: float = np.nan,
) -> Tuple[pd.DataFrame, np.ndarray]:
    """
    Reads an indicator count table (CSV or Excel).

    Expected:
      - one column holding event IDs (default 'Event').
      - remaining columns (or those named in ``categories``) are indicator
        counts. Entries such as "TNTC" are replaced by ``tntc_value``.

    Returns the count table and the event label array.
    """
    path = Path(path)
    df = _norm_cols(_read_table(path, sheet_name))

    if event_col not in df.columns:
        raise ValueError(f"{path} missing '{event_col}' column.")

    if categories is None:
        categories = [c for c in df.columns if c != event_col]
    missing = [c for c in categories if c not in df.columns]
    if missing:
        raise ValueError(f"{path} missing required columns: {missing}")

    counts = df[categories].copy()
    for c in categories:
        col = counts[c]
        if not pd.api.types.is_numeric_dtype(col):
            tntc = col.astype(str).str.strip().str.startswith(_TNTC_TOKENS)
            if tntc.any():
                logger.warning(f"{path}: {int(tntc.sum())} '{c}' entries marked too numerous to count")
            col = col.where(~tntc, tntc_value)
        counts[c] = pd.to_numeric(col, errors="raise").astype(float)

    event = df[event_col].to_numpy()
    logger.info(f"Loaded {counts.shape[0]} observations x {counts.shape[1]} categories from {path}")
    return counts, event


def load_min_detect(
    path: str | Path,
    category_col: str = "category",
    value_col: str = "min_detect",
    sheet_name: str | int = 0,
) -> pd.Series:
    """
    Reads detection limits from a two-column table.

    Expected columns:
      category, min_detect
    """
    path = Path(path)
    df = _norm_cols(_read_table(path, sheet_name))

    required = [category_col, value_col]
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"{path} missing required columns: {missing}")

    out = pd.Series(
        pd.to_numeric(df[value_col], errors="raise").to_numpy(dtype=float),
        index=df[category_col].astype(str).str.strip(),
        name="min_detect",
    )
    if out.index.duplicated().any():
        raise ValueError(f"{path} lists a category more than once.")
    return out


def write_fit_result(
    result: LatentFitResult,
    results_path: str | Path,
    format: Literal["csv", "excel"] = "csv",
) -> Path:
    """
    Writes alpha, beta, gamma, the imputed data and the round history.

    CSV writes one file per table; Excel writes one workbook with a sheet
    per table. Returns the output directory.
    """
    results_path = Path(results_path)
    results_path.mkdir(parents=True, exist_ok=True)

    tables = {
        "alpha": result.alpha,
        "beta": result.beta.to_frame(),
        "gamma": result.gamma.to_frame().assign(event=result.event),
        "imputed_data": result.data,
        "history": result.history,
    }

    if format == "excel":
        out = results_path / "latent_fit.xlsx"
        with pd.ExcelWriter(out) as writer:
            for name, table in tables.items():
                table.to_excel(writer, sheet_name=name)
    elif format == "csv":
        for name, table in tables.items():
            table.to_csv(results_path / f"{name}.csv")
    else:
        raise ValueError(f"Unknown format='{format}'. Use 'csv' or 'excel'.")

    logger.info(f"Results saved to {results_path}")
    return results_path


def _norm_col(c: object) -> str:
    # strip whitespace; preserve internal chars
    return str(c).strip()


def _norm_cols(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [_norm_col(c) for c in df.columns]
    return df
