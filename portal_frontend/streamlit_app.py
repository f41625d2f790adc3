import streamlit as st
import streamlit.components.v1 as components
import asyncio
import time
import json
import logging
import html

from exam_portal.config import load_settings
from exam_portal.collaborator import HttpCollaborator
from exam_portal.controller import TestSessionController
from exam_portal.errors import (
    AuthError, DuplicateIdentifier, PersistenceError, PreconditionViolation, ValidationError,
)
from exam_portal.host import SignalHost
from exam_portal.identity import IdentityGate
from exam_portal.results import category_breakdown, history_frame, load_history, summarize
from exam_portal.session import Phase
from exam_portal.timing import format_clock, format_countdown
from exam_portal.validation import BRANCHES

# Setup logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

HIDDEN_SIGNAL = "tab-hidden-signal"
LOW_TIME_SECONDS = 300

st.set_page_config(page_title="Recruitment Portal", page_icon="📝", layout="wide")

# ---------------------- Helper Functions ----------------------

@st.cache_resource
def get_settings():
    return load_settings()

def run(coro):
    return asyncio.run(coro)

def safe_text(text):
    """Sanitize text to prevent InvalidCharacterError in HTML rendering"""
    if not text: return ""
    return html.escape(str(text))

def collaborator() -> HttpCollaborator:
    if "collaborator" not in st.session_state:
        s = get_settings()
        st.session_state.collaborator = HttpCollaborator(s.store_url, s.store_api_key)
    return st.session_state.collaborator

def gate() -> IdentityGate:
    return IdentityGate(collaborator())

def host() -> SignalHost:
    if "host" not in st.session_state:
        st.session_state.host = SignalHost()
    return st.session_state.host

def controller() -> TestSessionController:
    return st.session_state.controller

def enter_portal(profile):
    ctl = TestSessionController(collaborator(), profile, get_settings())
    ctl.add_listener(lambda result: st.session_state.update(page="results"))
    run(ctl.load())
    ctl.attach(host())
    st.session_state.profile = profile
    st.session_state.controller = ctl
    st.session_state.current_q = 0
    st.session_state.page = "results" if ctl.session.is_terminal else "portal"

def show_field_errors(errors: dict):
    for field, msg in errors.items():
        st.error(f"**{field.replace('_', ' ').title()}**: {msg}")

def visibility_bridge(guard_prompt):
    """Injects the page-visibility and unload hooks into the parent page."""
    script = f"""
    <script>
    const win = window.parent;
    const doc = win.document;
    win.__portalGuard = {json.dumps(guard_prompt)};
    if (!win.__portalBridge) {{
        win.__portalBridge = true;
        doc.addEventListener('visibilitychange', () => {{
            if (!doc.hidden) return;
            const btn = Array.from(doc.querySelectorAll('button'))
                .find(b => b.innerText.trim() === '{HIDDEN_SIGNAL}');
            if (btn) btn.click();
        }});
        win.addEventListener('beforeunload', (e) => {{
            if (win.__portalGuard) {{ e.preventDefault(); e.returnValue = win.__portalGuard; }}
        }});
    }}
    </script>
    """
    components.html(script, height=0)

# ---------------------- Pages ----------------------

def auth_page():
    st.title("🎓 Recruitment Portal")
    login_tab, signup_tab = st.tabs(["Sign In", "Create Account"])

    with login_tab:
        with st.form("login"):
            email = st.text_input("📧 Email Address")
            password = st.text_input("🔒 Password", type="password")
            if st.form_submit_button("Sign In"):
                try:
                    principal, profile = run(gate().login(email, password))
                    logger.info(f"Signed in {principal.uid}")
                    enter_portal(profile)
                    st.rerun()
                except ValidationError as e:
                    show_field_errors(e.errors)
                except (AuthError, PersistenceError) as e:
                    st.error(e.message)

    with signup_tab:
        with st.form("signup"):
            name = st.text_input("👤 Full Name")
            email = st.text_input("📧 Email Address", key="su_email")
            phone = st.text_input("📱 Phone Number", max_chars=10)
            admission = st.text_input("#️⃣ Admission Number", max_chars=6)
            branch = st.selectbox("🏫 Branch", [""] + BRANCHES)
            password = st.text_input("🔒 Password", type="password", key="su_pw")
            confirm = st.text_input("🔒 Confirm Password", type="password")
            if st.form_submit_button("Create Account"):
                try:
                    principal, profile = run(gate().signup(name, email, phone, admission, branch, password, confirm))
                    enter_portal(profile)
                    st.rerun()
                except ValidationError as e:
                    show_field_errors(e.errors)
                except DuplicateIdentifier as e:
                    st.error(f"**{e.field.replace('_', ' ').title()}**: {e.message}")
                except (AuthError, PersistenceError) as e:
                    st.error(e.message)

def header():
    profile = st.session_state.profile
    c1, c2 = st.columns([4, 1])
    c1.markdown(f"Welcome back, **{safe_text(profile.name)}** · {safe_text(profile.admission_number)}")
    if c2.button("🚪 Logout"):
        run(gate().logout())
        controller().detach(host())
        for key in ("controller", "profile", "current_q"):
            st.session_state.pop(key, None)
        st.session_state.page = "auth"
        st.rerun()

def portal_page():
    header()
    ctl = controller()
    run(ctl.tick())

    st.title("📝 Recruitment Test")
    if ctl.phase is Phase.WAITING:
        st.metric("⏳ Test Begins In", format_countdown(ctl.seconds_until_start()))
    else:
        st.metric("⏳ Time Remaining In Window", format_countdown(ctl.seconds_left()))

    with st.expander("📋 Test Instructions", expanded=True):
        st.markdown(f"""
- The test duration is {ctl.settings.test_duration_minutes} minutes with {len(ctl.questions)} multiple-choice questions
- Each question carries equal marks with no negative marking
- You can navigate between questions and change answers
- Auto-submit will occur when time expires
- Do not refresh the page or switch tabs: switching more than {ctl.settings.max_tab_switches} times cancels the test
""")
        st.warning("Once you start the test, you cannot pause or restart it.")

    blocker = ctl.start_blocker()
    if st.button("▶️ Start Test Now", disabled=blocker is not None):
        try:
            run(ctl.start())
            st.session_state.current_q = 0
            st.session_state.page = "test"
            st.rerun()
        except PreconditionViolation as e:
            st.error(e.reason)
        except PersistenceError as e:
            st.error(f"Could not start the test: {e.message}")
    if blocker:
        st.caption(blocker)

    if ctl.session.is_terminal and st.button("📊 View Results"):
        st.session_state.page = "results"
        st.rerun()

    if ctl.phase is Phase.WAITING:
        time.sleep(1)
        st.rerun()

def test_page():
    ctl = controller()
    if st.sidebar.button(HIDDEN_SIGNAL):
        try:
            run(host().hidden())
        except PersistenceError as e:
            st.error(e.message)

    try:
        run(ctl.tick())
    except PreconditionViolation as e:
        st.error(e.reason)
    except PersistenceError as e:
        st.error(f"Auto-submit failed, please press Submit Test again: {e.message}")

    if ctl.phase is not Phase.IN_PROGRESS:
        st.session_state.page = "results" if ctl.result else "portal"
        st.rerun()
        return

    visibility_bridge(host().suspend_attempt())

    if ctl.warning_visible():
        st.warning(f"⚠️ You have switched the window. Doing this more times may cancel your test. "
                   f"({ctl.session.tab_switch_count}/{ctl.settings.max_tab_switches} switches used)")

    questions = ctl.questions
    idx = st.session_state.current_q
    left = ctl.seconds_left()

    c1, c2, c3 = st.columns([3, 1, 1])
    c1.write(f"Question {idx + 1} of {len(questions)} · {ctl.answered_count} answered")
    c2.metric("⏳ Time Left", format_clock(left) if left < 3600 else format_countdown(left))
    if c3.button("✅ Submit Test", disabled=ctl.is_submitting):
        try:
            run(ctl.submit())
            st.session_state.page = "results"
            st.rerun()
        except PreconditionViolation as e:
            st.error(e.reason)
        except PersistenceError as e:
            st.error(f"Failed to submit test. Please try again. ({e.message})")
    if left < LOW_TIME_SECONDS:
        st.error("Less than 5 minutes left!")
    st.progress((idx + 1) / len(questions))

    q = questions[idx]
    st.caption(q.category)
    st.markdown(f"### {safe_text(q.question)}")
    current = ctl.selections.get(q.id)
    frozen = ctl.is_submitting or ctl.has_pending_result
    choice = st.radio("Choose:", list(range(len(q.options))), index=current,
                      format_func=lambda i: q.options[i], key=f"q_{q.id}", disabled=frozen)
    if frozen:
        st.caption("Answers are locked while your submission is being saved. Press Submit Test to retry.")
    elif choice is not None and choice != current:
        try:
            ctl.select_answer(q.id, choice)
        except PreconditionViolation as e:
            st.error(e.reason)
    st.write("✅ Answered" if q.id in ctl.selections else "⚠️ Not answered")

    p, n = st.columns(2)
    if p.button("⬅️ Previous", disabled=idx == 0):
        st.session_state.current_q -= 1
        st.rerun()
    if n.button("Next ➡️", disabled=idx == len(questions) - 1):
        st.session_state.current_q += 1
        st.rerun()

    st.markdown("#### 🚩 Question Navigator")
    cols = st.columns(10)
    for i, question in enumerate(questions):
        mark = "🟦" if i == idx else ("🟩" if question.id in ctl.selections else "⬜")
        if cols[i % 10].button(f"{mark} {i + 1}", key=f"nav_{i}"):
            st.session_state.current_q = i
            st.rerun()

    time.sleep(1)
    st.rerun()

def results_page():
    header()
    ctl = controller()
    result = ctl.result

    if ctl.phase is Phase.CANCELLED:
        st.error("❌ Test Cancelled. Your test has been cancelled due to excessive tab switching.")
        st.caption(f"Tab switches: {ctl.session.tab_switch_count}. Maximum allowed: {ctl.settings.max_tab_switches}")

    if result:
        summary = summarize(result)
        st.title(f"🏆 {summary.grade}: {summary.message}")
        m1, m2, m3, m4 = st.columns(4)
        m1.metric("Score", f"{result.score}/{result.total_questions}")
        m2.metric("Percentage", f"{result.percentage}%")
        m3.metric("Answered", f"{summary.answered}/{result.total_questions}")
        m4.metric("Time Spent", summary.time_spent_label)
        if result.answers:
            st.dataframe(category_breakdown(result, ctl.questions), use_container_width=True)

    st.markdown("### 📜 Test History")
    try:
        history = run(load_history(collaborator(), st.session_state.profile.id))
        if history:
            st.dataframe(history_frame(history), use_container_width=True)
        else:
            st.info("No results yet")
    except PersistenceError as e:
        st.error(f"Failed to load test results: {e.message}")

    st.info("Thank you for participating in the recruitment process. We appreciate your time and effort!")
    if st.button("⬅️ Back to Portal"):
        st.session_state.page = "portal"
        st.rerun()

def admin_page():
    st.title("🔧 Admin Dashboard")
    expected = get_settings().admin_password
    if not expected:
        st.info("Admin board disabled. Set ADMIN_PASSWORD to enable it.")
        return
    if st.text_input("Admin password", type="password") != expected:
        return

    if st.button("Refresh Results"):
        st.session_state.load_res = True

    if st.session_state.get('load_res'):
        try:
            results = run(collaborator().all_results())
        except PersistenceError as e:
            st.error(e.message)
            return
        if results:
            df = history_frame(results)
            st.dataframe(df, use_container_width=True)
            st.download_button("⬇️ Download CSV", df.to_csv(index=False), "results.csv", "text/csv")
        else:
            st.info("No results yet")

def main():
    if "page" not in st.session_state:
        st.session_state.page = "auth"
        restored = run(gate().restore_session())
        if restored:
            enter_portal(restored[1])

    sb = st.sidebar.radio("Navigation", ["Candidate Portal", "Admin Panel"])

    if sb == "Admin Panel":
        admin_page()
    else:
        page = st.session_state.page
        if page == "auth": auth_page()
        elif page == "portal": portal_page()
        elif page == "test": test_page()
        else: results_page()

if __name__ == "__main__":
    main()
