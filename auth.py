import pydantic
import streamlit as st

from api import error_messages
from database import create_user, authenticate
from schemas import SignUp


def signup_errors(username, email, password):
    try:
        SignUp(username=username, email=email, password=password)
    except pydantic.ValidationError as exc:
        return error_messages(exc)
    return []


def login():
    st.title("Login or Sign Up")

    # Tabs for Login and Signup
    tab_login, tab_signup = st.tabs(["Login", "Sign Up"])

    with tab_login:
        st.subheader("Login")
        login_name = st.text_input("Username or email", key="login_name")
        password = st.text_input("Password", type="password", key="login_password")
        if st.button("Login"):
            if login_name and password:
                user = authenticate(login_name.strip(), password)
                if user:
                    st.session_state["user_id"] = user.id
                    st.session_state["username"] = user.username
                    st.session_state["logged_in"] = True
                    st.rerun()
                else:
                    st.error("Invalid username or password")
            else:
                st.error("Please enter both username and password")

    with tab_signup:
        st.subheader("Sign Up")
        new_name = st.text_input("Username", key="signup_name")
        new_email = st.text_input("Email", key="signup_email")
        new_password = st.text_input("Password", type="password", key="signup_password")
        if st.button("Sign Up"):
            errors = signup_errors(new_name, new_email, new_password)
            if errors:
                for message in errors:
                    st.error(message)
            else:
                user = create_user(new_name.strip(), new_email.strip(), new_password)
                if user:
                    st.success("Account created successfully! Please go to Login.")
                else:
                    st.error("Error: User with this email or username already exists.")


def logout():
    for key in ("user_id", "username", "logged_in"):
        st.session_state.pop(key, None)
    st.rerun()
