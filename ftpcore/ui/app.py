import sys
import os

# Ensure project root is on sys.path so `import ftpcore` resolves when Streamlit runs
# (Streamlit runs the script from its directory which can make package imports fail)
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from datetime import datetime, timezone
import logging
import tempfile

import streamlit as st

from ftpcore.client import FTPClient
from ftpcore.config import ClientConfig, configure_logging
from ftpcore.errors import FTPError

configure_logging()
logger = logging.getLogger(__name__)

st.set_page_config(page_title="ftpcore Client UI", layout="wide")

OPERATIONS = [
    "List directory",
    "Upload",
    "Download",
    "Delete",
    "Rename",
    "Make directory",
    "Remove directory",
    "Set permissions",
    "File size",
    "Directory exists",
]


# --- Helpers -----------------------------------------------------------------

def record(entry_name: str, outcome=None, raw: str = "", error: bool = False):
    history = st.session_state.setdefault("history", [])
    history.append({
        "time": datetime.now(timezone.utc),
        "command": entry_name,
        "outcome": outcome,
        "raw": raw,
        "error": error if outcome is None else not outcome.success,
    })


def show_outcome(outcome):
    if outcome.success:
        st.success(f"{outcome.operation}: OK")
    else:
        st.error(f"{outcome.description} ({outcome.error})")
    last = outcome.last_reply
    if last is not None:
        st.caption(f"{last.code} — {last.message}")


# --- UI ----------------------------------------------------------------------
st.title("ftpcore — Streamlit Client")

defaults = ClientConfig.from_env()

with st.sidebar:
    st.header("Connection")
    host = st.text_input("Host", value=defaults.host, key="host")
    port = st.number_input("Port", min_value=1, max_value=65535, value=defaults.port, key="port")
    username = st.text_input("User", value=defaults.username, key="username")
    password = st.text_input("Password", value=defaults.password, type="password", key="password")
    passive = st.checkbox("Passive mode", value=defaults.passive, key="passive")
    timeout = st.number_input("Timeout (s)", min_value=1.0, max_value=120.0, value=float(defaults.timeout), key="timeout")

    if st.button("Connect", key="connect"):
        logger.info(f"[UI] Connect button clicked: {host}:{port}")
        client = FTPClient(host, username=username, password=password, port=int(port),
                           passive=passive, timeout=float(timeout))
        try:
            session = client.open()
            st.session_state["client"] = client
            record(f"CONNECT {host}:{port}", raw=str(session.welcome))
            st.success(f"Connected to {host}:{port}")
        except FTPError as e:
            logger.error(f"[UI] Connection failed: {e}")
            st.session_state["client"] = None
            record(f"CONNECT {host}:{port}", raw=str(e), error=True)
            st.error(f"Connection failed: {e}")

    if st.button("Disconnect", key="disconnect"):
        client = st.session_state.get("client")
        if client:
            client.close()
            record("DISCONNECT", raw="Disconnected by user")
            st.session_state["client"] = None
            st.info("Disconnected")


client: FTPClient = st.session_state.get("client")

col1, col2 = st.columns([3, 1])

with col1:
    st.subheader("Operations")
    operation = st.selectbox("Operation", OPERATIONS, key="operation")
    path = st.text_input("Remote path", key="remote_path")

    target = None
    uploaded_file = None
    text_mode = False
    chmod_mode = "644"
    if operation == "Rename":
        target = st.text_input("New remote path", key="target_path")
    elif operation == "Upload":
        uploaded_file = st.file_uploader("File to upload", key="upload_file")
    elif operation == "Set permissions":
        chmod_mode = st.text_input("Mode (octal)", value="644", key="chmod_mode")
    if operation in ("Upload", "Download"):
        text_mode = st.checkbox("Text mode (TYPE A)", key="text_mode")

    if st.button("Run", key="run"):
        if client is None:
            st.error("Not connected. Connect first.")
        else:
            logger.info(f"[UI] {operation} {path}")
            mode = "text" if text_mode else "binary"
            outcome = None
            with st.spinner(f"{operation}..."):
                if operation == "List directory":
                    outcome = client.list_directory(path)
                    if outcome:
                        st.text_area("Listing", value="\n".join(outcome.payload))
                elif operation == "Upload":
                    if uploaded_file is None:
                        st.error("Select a file to upload.")
                    else:
                        with tempfile.NamedTemporaryFile(delete=False) as tmp:
                            tmp.write(uploaded_file.getbuffer())
                        try:
                            outcome = client.upload(tmp.name, path or uploaded_file.name, mode)
                        finally:
                            os.unlink(tmp.name)
                elif operation == "Download":
                    local = os.path.join(tempfile.gettempdir(), os.path.basename(path) or "download")
                    outcome = client.download(path, local, mode)
                    if outcome:
                        with open(local, "rb") as f:
                            st.download_button("Save file", f.read(), file_name=os.path.basename(local))
                elif operation == "Delete":
                    outcome = client.delete(path)
                elif operation == "Rename":
                    outcome = client.rename(path, target)
                elif operation == "Make directory":
                    outcome = client.make_directory(path)
                elif operation == "Remove directory":
                    outcome = client.remove_directory(path)
                elif operation == "Set permissions":
                    try:
                        outcome = client.set_permissions(path, int(chmod_mode, 8))
                    except ValueError:
                        st.error(f"Invalid octal mode: {chmod_mode}")
                elif operation == "File size":
                    outcome = client.file_size(path)
                    if outcome:
                        st.metric("Size (bytes)", outcome.payload)
                elif operation == "Directory exists":
                    outcome = client.directory_exists(path)
                    if outcome:
                        st.write("Exists" if outcome.payload else "Does not exist")

            if outcome is not None:
                record(f"{operation} {path}".strip(), outcome)
                show_outcome(outcome)

with col2:
    st.subheader("History")
    history = st.session_state.get("history", [])
    if not history:
        st.info("No history yet")
    if history and st.button("Clear History", key="clear_history"):
        st.session_state["history"] = []
        st.rerun()
    for entry in reversed(history[-100:]):
        time_str = entry["time"].isoformat()
        with st.expander(f"{time_str} — {entry['command']}"):
            outcome = entry.get("outcome")
            if outcome is not None:
                for reply in outcome.replies:
                    st.code(str(reply))
            if entry.get("raw"):
                st.code(entry["raw"])
            if entry.get("error"):
                st.error("This entry had an error")


# Footer
st.markdown("---")
st.caption("ftpcore Streamlit UI — one operation at a time over a shared session.")
