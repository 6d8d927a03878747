import json
import logging
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, List

import streamlit as st
from websocket import WebSocketException, create_connection

from elitemindset.coaching.templates import image_reference, origin_for_url


def setup_client_logging() -> logging.Logger:
    logs_dir = Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("elitemindset.streamlit")
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    fh = RotatingFileHandler(logs_dir / "client.log", maxBytes=2_000_000, backupCount=3)
    fh.setFormatter(fmt)
    logger.addHandler(fh)
    return logger


LOGGER = setup_client_logging()


def ws_token_stream(
    ws_url: str,
    session_id: str,
    message: str,
    images: List[Dict[str, Any]],
) -> Iterator[str]:
    """Connect to backend WS, send message, yield response tokens.

    Image frames are collected into ``images`` so the caller can render them
    once the text has been streamed.
    """
    LOGGER.info("Connecting ws_url=%s session_id=%s", ws_url, session_id)
    ws = create_connection(ws_url, timeout=30)
    try:
        ws.send(json.dumps({"session_id": session_id, "message": message}))
        while True:
            raw = ws.recv()
            payload = json.loads(raw)
            t = payload.get("type")
            if t == "token":
                yield payload.get("data") or ""
            elif t == "state":
                LOGGER.info("WS state session_id=%s state=%s", session_id, payload.get("state"))
            elif t == "image":
                images.append(payload)
            elif t == "done":
                LOGGER.info(
                    "WS done session_id=%s interaction_count=%s",
                    payload.get("session_id"),
                    payload.get("interaction_count"),
                )
                return
            elif t == "error":
                err = payload.get("data") or "Unknown error"
                LOGGER.error("WS error: %s", err)
                raise RuntimeError(err)
    finally:
        ws.close()


def _show_images(images: List[Dict[str, Any]], ws_url: str) -> None:
    """Render state images; relative references resolve against the server's /images/."""
    origin = origin_for_url(ws_url)
    for image in images:
        reference = image_reference(image.get("reference") or "", origin)
        if reference.startswith(("http://", "https://")):
            st.image(reference, width=240)
        else:
            st.caption(f"Image: {reference}")


st.set_page_config(page_title="EliteMindset Coach", page_icon="🧭", layout="centered")

st.title("EliteMindset Coach")

with st.sidebar:
    st.subheader("Connection")
    default_ws = "ws://localhost:10000/ws/coach"
    ws_url = st.text_input("WebSocket URL", value=default_ws)
    default_session = st.session_state.get("session_id") or f"streamlit-{uuid.uuid4().hex[:8]}"
    session_id = st.text_input("Session ID", value=default_session)
    st.session_state["session_id"] = session_id
    st.markdown("---")
    if st.button("Clear chat"):
        st.session_state["messages"] = []

if "messages" not in st.session_state:
    st.session_state["messages"] = []

for m in st.session_state["messages"]:
    with st.chat_message(m["role"]):
        st.markdown(m["content"])
        _show_images(m.get("images", []), ws_url)

prompt = st.chat_input("How are you feeling about your work right now?")
if prompt:
    st.session_state["messages"].append({"role": "user", "content": prompt})
    with st.chat_message("user"):
        st.markdown(prompt)

    images: List[Dict[str, Any]] = []
    with st.chat_message("assistant"):
        try:
            full = st.write_stream(ws_token_stream(ws_url, session_id, prompt, images))
            _show_images(images, ws_url)
        except (RuntimeError, OSError, ValueError, WebSocketException) as e:
            full = f"Error: {e}"
            st.error(full)

    st.session_state["messages"].append(
        {"role": "assistant", "content": full, "images": images}
    )
