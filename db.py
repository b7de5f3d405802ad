"""Supabase client. Cached via Streamlit for the app, uncached for scripts."""
import streamlit as st
from supabase import create_client, Client

from tryout.config import SUPABASE_URL, SUPABASE_KEY
from tryout.database import DatabaseClient

AUTH_CLIENT_KEY = "supabase_auth_client"


def _env_client() -> Client:
    if not SUPABASE_URL or not SUPABASE_KEY:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
    return create_client(SUPABASE_URL, SUPABASE_KEY)


@st.cache_resource
def get_supabase() -> Client:
    """Shared by every browser session: table access only, never signed in."""
    return _env_client()


def get_supabase_uncached() -> Client:
    """For CLI/scripts (no Streamlit context)."""
    return _env_client()


def get_session_auth_client() -> Client:
    """One client per browser session for sign up / in / out."""
    if AUTH_CLIENT_KEY not in st.session_state:
        st.session_state[AUTH_CLIENT_KEY] = _env_client()
    return st.session_state[AUTH_CLIENT_KEY]


def reset_session_auth_client() -> None:
    st.session_state.pop(AUTH_CLIENT_KEY, None)


def get_database() -> DatabaseClient:
    return DatabaseClient(get_supabase(), auth_client=get_session_auth_client())


def get_database_uncached() -> DatabaseClient:
    return DatabaseClient(get_supabase_uncached())
