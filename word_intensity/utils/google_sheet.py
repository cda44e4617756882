from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional

import gspread
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1

from .persistence import get_cfg

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]


def _service_account_info(cfg: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    info = dict(cfg.get("service_account") or {})
    if info:
        return info
    env_json = os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON")
    if env_json:
        try:
            return json.loads(env_json)
        except json.JSONDecodeError:
            raise RuntimeError("Invalid JSON in GOOGLE_APPLICATION_CREDENTIALS_JSON.")
    return None


def _client(cfg: Dict[str, Any]) -> gspread.Client:
    info = _service_account_info(cfg)
    if not info:
        raise RuntimeError(
            "No Google credentials. On Streamlit Cloud, set `gcp_service_account` in Secrets. "
            "For local dev, set env GOOGLE_APPLICATION_CREDENTIALS_JSON with the full JSON."
        )
    pk = info.get("private_key")
    if isinstance(pk, str) and "\\n" in pk and "BEGIN PRIVATE KEY" in pk:
        info["private_key"] = pk.replace("\\n", "\n")
    creds = Credentials.from_service_account_info(info, scopes=SCOPES)
    return gspread.authorize(creds)


def get_google_sheet(cfg: Optional[Dict[str, Any]] = None):
    """Open the configured spreadsheet; ``cfg`` defaults to one ``get_cfg()`` read."""
    cfg = cfg if cfg is not None else get_cfg()
    client = _client(cfg)
    sheet_id = cfg.get("spreadsheet_id")
    sheet_url = cfg.get("spreadsheet_url")
    if sheet_id:
        return client.open_by_key(sheet_id)
    if sheet_url:
        return client.open_by_url(sheet_url)
    raise RuntimeError("Missing Google Sheet identifier. Set secrets [sheets] spreadsheet_id or spreadsheet_url.")


def get_worksheet(sheet, worksheet: str, header: List[str]):
    """Open ``worksheet``, creating it and writing ``header`` when needed."""
    try:
        ws = sheet.worksheet(worksheet)
    except gspread.exceptions.WorksheetNotFound:
        ws = sheet.add_worksheet(title=worksheet, rows=2, cols=len(header))
    expected_cols = len(header)
    if ws.col_count < expected_cols:
        ws.resize(rows=max(ws.row_count, 2), cols=expected_cols)
    existing_header = ws.row_values(1)
    normalized_existing = existing_header + [""] * (expected_cols - len(existing_header))
    if normalized_existing[:expected_cols] != list(header):
        header_range = f"A1:{rowcol_to_a1(1, expected_cols)}"
        ws.update(header_range, [list(header)])
    return ws


def append_rows_to_sheet(
    rows: List[List[Any]], worksheet: str, header: List[str], sheet=None
) -> int:
    """Append ``rows`` below ``header`` and return how many were written."""
    if not rows:
        return 0
    for row in rows:
        if len(row) != len(header):
            raise ValueError(
                f"Sheet row length {len(row)} does not match expected {len(header)} columns."
            )
    sh = sheet if sheet is not None else get_google_sheet()
    ws = get_worksheet(sh, worksheet, header)
    ws.append_rows(rows, value_input_option="RAW", insert_data_option="INSERT_ROWS")
    return len(rows)
