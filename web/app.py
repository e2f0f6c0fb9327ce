#!/usr/bin/env python3
from __future__ import annotations

import re
from pathlib import Path
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import pandas as pd
import requests
import streamlit as st

from roster_sync.config import DEFAULT_CONFIG
from roster_sync.engine.reader import WorkbookReadError, available_attendance_columns, read_all_grades
from roster_sync.engine.writer import BatchResult, BatchState, WriteStatus, apply_writes
from roster_sync.inputs import WriteParseError, load_writes_bytes

WORKBOOK_EXTS = {".xlsx", ".xlsm"}
WRITES_EXTS = {".json", ".csv"}
MAX_REMOTE_FILE_MB = 50
MAX_REMOTE_FILE_BYTES = MAX_REMOTE_FILE_MB * 1024 * 1024
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLSM_MIME = "application/vnd.ms-excel.sheet.macroEnabled.12"


def ensure_state() -> None:
    st.session_state.setdefault("result", None)
    st.session_state.setdefault("workbook_name", "")
    st.session_state.setdefault("public_url_input", "")


def normalize_public_url(raw_url: str) -> str:
    parsed = urlparse(raw_url.strip())
    if not parsed.scheme:
        raise ValueError("URL must start with http:// or https://")

    host = parsed.netloc.lower()
    query = parse_qs(parsed.query, keep_blank_values=True)

    if "dropbox.com" in host:
        query["dl"] = ["1"]
        return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))

    if host in {"drive.google.com", "docs.google.com"}:
        sheet_match = re.search(r"/spreadsheets/d/([^/]+)", parsed.path)
        if sheet_match:
            return f"https://docs.google.com/spreadsheets/d/{sheet_match.group(1)}/export?format=xlsx"
        match = re.search(r"/file/d/([^/]+)", parsed.path)
        if match:
            return f"https://drive.google.com/uc?export=download&id={match.group(1)}"

    if host.endswith("1drv.ms") or "onedrive.live.com" in host:
        query["download"] = ["1"]
        return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))

    return raw_url.strip()


def remote_filename(raw_url: str, response: requests.Response) -> str:
    content_disposition = response.headers.get("content-disposition", "")
    match = re.search(r'filename="([^"]+)"|filename=([^;]+)', content_disposition, re.I)
    if match:
        for group in match.groups():
            if group:
                return Path(group.strip().strip('"')).name
    redirected = response.url or raw_url
    return Path(urlparse(redirected).path).name or "master.xlsx"


def fetch_remote_workbook(raw_url: str) -> tuple[str, bytes]:
    url = normalize_public_url(raw_url)
    response = requests.get(url, timeout=60, allow_redirects=True, stream=True)
    try:
        response.raise_for_status()
        content_length = response.headers.get("Content-Length")
        if content_length and content_length.isdigit() and int(content_length) > MAX_REMOTE_FILE_BYTES:
            raise ValueError(f"Remote file is larger than {MAX_REMOTE_FILE_MB} MB.")

        chunks: list[bytes] = []
        downloaded = 0
        for chunk in response.iter_content(chunk_size=1024 * 1024):
            if not chunk:
                continue
            downloaded += len(chunk)
            if downloaded > MAX_REMOTE_FILE_BYTES:
                raise ValueError(f"Remote file is larger than {MAX_REMOTE_FILE_MB} MB.")
            chunks.append(chunk)
        content = b"".join(chunks)
    finally:
        response.close()

    filename = remote_filename(raw_url, response)
    if Path(filename).suffix.lower() not in WORKBOOK_EXTS:
        filename = f"{Path(filename).stem or 'master'}.xlsx"
    return filename, content


def outcomes_frame(result: BatchResult) -> pd.DataFrame:
    rows = []
    for outcome in result.outcomes:
        rows.append(
            {
                "write": outcome.write.describe(),
                "status": outcome.status.value,
                "sheet": outcome.location.sheet if outcome.location else "",
                "cell": outcome.location.cell if outcome.location else "",
                "message": outcome.message,
            }
        )
    return pd.DataFrame(rows, columns=["write", "status", "sheet", "cell", "message"])


def reconciled_name(workbook_name: str) -> str:
    path = Path(workbook_name or "master.xlsx")
    return f"{path.stem}_reconciled{path.suffix or '.xlsx'}"


def render_workbook_overview(workbook_bytes: bytes) -> None:
    try:
        columns = available_attendance_columns(workbook_bytes, DEFAULT_CONFIG)
        grades = read_all_grades(workbook_bytes, DEFAULT_CONFIG)
    except WorkbookReadError as exc:
        st.error(str(exc))
        return
    with st.expander("Workbook overview", expanded=False):
        st.caption(f"{len(columns)} attendance columns found")
        if columns:
            st.dataframe(pd.DataFrame([column.to_dict() for column in columns]), width="stretch", hide_index=True)
        for semester, rows in grades.items():
            st.caption(f"{semester}: {len(rows)} students with grades")


def render_result(result: BatchResult) -> None:
    st.subheader("Result")
    metrics = st.columns(3)
    metrics[0].metric("Writes", len(result.outcomes))
    metrics[1].metric("Written", result.written_count)
    needs_review = sum(
        1 for o in result.outcomes if o.status not in {WriteStatus.WRITTEN, WriteStatus.SKIPPED_NO_VALUE}
    )
    metrics[2].metric("Needs review", needs_review)

    if result.error:
        st.error(result.error)
    if result.outcomes:
        st.dataframe(outcomes_frame(result), width="stretch", hide_index=True)
    if result.state is BatchState.SERIALIZED:
        download_name = reconciled_name(st.session_state["workbook_name"])
        st.download_button(
            "Download reconciled workbook",
            data=result.buffer,
            file_name=download_name,
            mime=XLSM_MIME if download_name.endswith(".xlsm") else XLSX_MIME,
            width="stretch",
        )


def main() -> None:
    st.set_page_config(page_title="roster-sync", layout="wide", initial_sidebar_state="collapsed")
    ensure_state()

    st.title("roster-sync")
    st.caption("Write attendance marks and grades into the class master workbook without touching its layout.")

    upload = st.file_uploader("Master workbook", type=[ext.lstrip(".") for ext in sorted(WORKBOOK_EXTS)])
    st.text_input("...or a public workbook URL", key="public_url_input")
    st.caption(f"URL mode makes an outbound request and rejects files above {MAX_REMOTE_FILE_MB} MB.")
    writes_upload = st.file_uploader("Writes file", type=[ext.lstrip(".") for ext in sorted(WRITES_EXTS)])

    workbook_name, workbook_bytes = "", b""
    if upload is not None:
        workbook_name, workbook_bytes = upload.name, upload.getvalue()
    elif st.session_state["public_url_input"].strip():
        try:
            workbook_name, workbook_bytes = fetch_remote_workbook(st.session_state["public_url_input"])
        except (requests.RequestException, ValueError) as exc:
            st.error(f"Could not fetch workbook: {exc}")

    if workbook_bytes:
        render_workbook_overview(workbook_bytes)

    if st.button("Apply", type="primary", disabled=not workbook_bytes or writes_upload is None):
        try:
            writes = load_writes_bytes(writes_upload.getvalue(), Path(writes_upload.name).suffix)
        except WriteParseError as exc:
            st.error(str(exc))
            return
        st.session_state["workbook_name"] = workbook_name
        st.session_state["result"] = apply_writes(workbook_bytes, writes, DEFAULT_CONFIG)

    if st.session_state["result"] is not None:
        render_result(st.session_state["result"])
    else:
        st.info("Upload a .xlsx/.xlsm master workbook and a .json/.csv writes file.")


if __name__ == "__main__":
    main()
