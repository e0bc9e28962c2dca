"""Exam Portal: multi-page Streamlit app with timed tests, results, leaderboard and the admin console."""
import base64
import logging
import os
import sys
from pathlib import Path
from uuid import uuid4

# Ensure project root is in path
project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import streamlit as st

from db import get_supabase, get_supabase_uncached
from engine import DEFAULT_SETTINGS, QUESTION_TYPE_LABELS, QUESTION_TYPES, ROLE_ADMIN
from examportal.auth import AuthError, AuthService
from examportal.authoring import QuestionDraft, TestDraft, image_to_data_url
from examportal.database import DatabaseClient, StorageError
from examportal.definitions import (
    ChoiceQuestion,
    FreeTextQuestion,
    MatchingQuestion,
    MultipleChoiceQuestion,
    SingleChoiceQuestion,
    ValidationError,
    format_time,
)
from examportal.engine import Result, TestSession
from examportal.leaderboard import (
    admin_dashboard_stats,
    admin_ranking,
    filter_by_query,
    rank_users,
    user_dashboard_stats,
)
from importer import DEFAULT_SHEET_ID, SheetImportError, load_results

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"), format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

IMAGE_TYPES = ["png", "jpg", "jpeg", "gif", "webp"]
USER_PAGES = ["Dashboard", "Take Test", "Results", "Rank", "Profile"]
ADMIN_PAGES = ["Admin Dashboard", "Tests", "Edit Test", "Admin Rank", "Settings", "Profile"]

st.set_page_config(page_title="Exam Portal", layout="wide")

# Site settings are public and shared; auth state is per browser session
try:
    settings = DatabaseClient(get_supabase()).get_settings()
    if "supabase" not in st.session_state:
        st.session_state["supabase"] = get_supabase_uncached()
except ValueError as e:
    st.error(f"{e}. Check .env (SUPABASE_URL, SUPABASE_KEY).")
    st.stop()

db = DatabaseClient(st.session_state["supabase"])
auth = AuthService(st.session_state["supabase"], db)


def go_to(page: str):
    st.query_params["page"] = page
    st.rerun()


def show_image(url: str | None, width: int | None = None):
    if not url:
        return
    if url.startswith("data:"):
        _, encoded = url.split(",", 1)
        st.image(base64.b64decode(encoded), width=width)
    else:
        st.image(url, width=width)


def uploaded_image(upload) -> str | None:
    """Convert an st.file_uploader value to a data URL, reporting rejects inline."""
    if upload is None:
        return None
    try:
        return image_to_data_url(upload.getvalue(), upload.type or "")
    except ValidationError as e:
        for _, message in e.errors:
            st.error(message)
        return None


def show_validation_errors(error: ValidationError):
    for name, message in error.errors:
        st.error(f"{name}: {message}")


def full_name(profile: dict) -> str:
    return f"{profile.get('first_name', '')} {profile.get('last_name', '')}".strip()


# ----- Login / Register -----

def page_login():
    st.title(settings["site_name"])
    st.caption(settings["site_description"])
    login_tab, register_tab = st.tabs(["Login", "Register"])

    with login_tab:
        with st.form("login"):
            identifier = st.text_input("Email or first name")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Login", type="primary")
        if submitted:
            try:
                st.session_state["profile"] = auth.sign_in(identifier, password)
                st.query_params.clear()
                st.rerun()
            except AuthError as e:
                st.error(str(e))

    with register_tab:
        with st.form("register"):
            col1, col2 = st.columns(2)
            with col1:
                first_name = st.text_input("First name")
            with col2:
                last_name = st.text_input("Last name")
            email = st.text_input("Email")
            password = st.text_input("Password", type="password", key="reg_password")
            confirm = st.text_input("Confirm password", type="password")
            submitted = st.form_submit_button("Register", type="primary")
        if submitted:
            try:
                auth.sign_up(email, password, first_name, last_name, confirm_password=confirm)
                st.session_state["profile"] = auth.sign_in(email, password)
                st.rerun()
            except AuthError as e:
                st.error(str(e))

    if settings["terms_and_conditions"]:
        with st.expander("Terms and conditions"):
            st.markdown(settings["terms_and_conditions"])
    if settings["privacy_policy"]:
        with st.expander("Privacy policy"):
            st.markdown(settings["privacy_policy"])
    if settings["contact_email"]:
        st.caption(f"Contact: {settings['contact_email']}")


# ----- Dashboard -----

def page_dashboard(profile: dict):
    st.header(settings["welcome_message"])
    tests = db.list_tests()
    results = db.get_results(user_id=profile["id"])
    stats = user_dashboard_stats(profile["id"], results, len(tests))

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Tests", stats["total_tests"])
    col2.metric("Completed", stats["completed_tests"])
    col3.metric("Passed", stats["passed_tests"])
    col4.metric("Average score", f"{stats['average_score']}%")

    query = st.text_input("Search tests", placeholder="Title or description")
    for test in filter_by_query(tests, query, ("title", "description")):
        latest = stats["latest"].get(test.id)
        with st.container(border=True):
            col1, col2 = st.columns([3, 1])
            with col1:
                st.subheader(test.title)
                st.write(test.description)
                st.caption(f"{len(test.questions)} questions · {test.time_limit} · pass at {test.passing_score}%")
                if latest:
                    label = "Passed" if latest.passed else "Not passed"
                    st.progress(latest.percentage / 100, text=f"Last attempt: {latest.percentage}% ({label})")
            with col2:
                show_image(test.image_url, width=160)
                if st.button("Retake" if latest else "Start", key=f"start_{test.id}", use_container_width=True):
                    st.session_state["active_test_id"] = test.id
                    st.session_state.pop("test_session", None)
                    go_to("Take Test")


# ----- Take Test -----

def finish_attempt(session: TestSession):
    """Submit once and persist once, whether triggered by the button or by the timer."""
    result = session.submit()
    if st.session_state.get("saved_session") == session.session_id:
        return
    try:
        db.save_result(result)
        st.session_state["saved_session"] = session.session_id
    except StorageError as e:
        st.error(f"Your answers were scored but could not be saved: {e}")


def render_question(session: TestSession, question):
    answer = session.answers[question.id]
    st.markdown(f"**{question.text}**")
    st.caption(f"{question.points} point{'s' if question.points != 1 else ''} · {QUESTION_TYPE_LABELS[question.type]}")
    show_image(question.image_url, width=400)

    match question:
        case SingleChoiceQuestion():
            ids = question.option_ids()
            labels = {o.id: o.text for o in question.options}
            choice = st.radio(
                "Choose one:",
                ids,
                index=ids.index(answer.value) if answer.value in ids else None,
                format_func=lambda oid: labels.get(oid, ""),
                key=f"ans_{question.id}",
            )
            if choice and choice != answer.value:
                session.select_option(question.id, choice)
            for option in question.options:
                if option.image_url:
                    st.caption(option.text)
                    show_image(option.image_url, width=200)
        case MultipleChoiceQuestion():
            selected = answer.selected_ids()
            for option in question.options:
                checked = st.checkbox(option.text, value=option.id in selected, key=f"ans_{question.id}_{option.id}")
                show_image(option.image_url, width=200)
                if checked != (option.id in selected):
                    session.toggle_option(question.id, option.id, checked)
        case FreeTextQuestion():
            text = st.text_area("Your answer", value=answer.value if isinstance(answer.value, str) else "",
                                key=f"ans_{question.id}")
            if text != answer.value:
                session.set_text(question.id, text)
        case MatchingQuestion():
            rights = question.right_values()
            for left in question.left_values():
                current = answer.matches.get(left, "")
                choice = st.selectbox(
                    left,
                    [""] + rights,
                    index=([""] + rights).index(current) if current in rights else 0,
                    format_func=lambda v: v or "— choose —",
                    key=f"ans_{question.id}_{left}",
                )
                if choice and choice != current:
                    session.match_pair(question.id, left, choice)
                elif not choice and current:
                    session.clear_match(question.id, left)


def render_result(result: Result, session: TestSession | None = None):
    col1, col2, col3 = st.columns(3)
    col1.metric("Score", f"{result.score:g} / {result.total_points}")
    col2.metric("Percentage", f"{result.percentage}%")
    col3.metric("Time spent", format_time(result.time_spent))
    if result.passed:
        st.success("Passed")
    else:
        st.error("Not passed")

    for qid, breakdown in result.matching_results.items():
        st.caption(
            f"{breakdown.question_text}: {breakdown.correct_count}/{breakdown.total_pairs} pairs, "
            f"{breakdown.earned_points:.2f}/{breakdown.total_pair_points} points"
        )

    if session is None:
        return
    with st.expander("Review answers"):
        for question in session.visible_question_list():
            answer = result.answers.get(question.id)
            st.markdown(f"**{question.text}**")
            if isinstance(question, ChoiceQuestion):
                labels = {o.id: o.text for o in question.options}
                chosen = [labels.get(oid, oid) for oid in (answer.selected_ids() if answer else set())]
                st.write(f"Your answer: {', '.join(chosen) or '—'}")
                st.write(f"Correct: {', '.join(labels[c] for c in question.correct_answers if c in labels)}")
            elif isinstance(question, MatchingQuestion):
                for pair in question.matching_pairs:
                    given = answer.matches.get(pair.left, "—") if answer else "—"
                    mark = "✓" if given == pair.right else "✗"
                    st.write(f"{mark} {pair.left} → {given} (correct: {pair.right})")
            else:
                st.write(f"Your answer: {answer.value if answer and answer.value else '—'}")
                st.caption("Free-text answers are reviewed manually.")


def page_take_test(profile: dict):
    test_id = st.session_state.get("active_test_id")
    if not test_id:
        st.info("Choose a test on the dashboard.")
        if st.button("Go to dashboard"):
            go_to("Dashboard")
        st.stop()

    session: TestSession | None = st.session_state.get("test_session")
    if session is None or session.test.id != test_id:
        test = db.get_test(test_id)
        if test is None:
            st.error("Test not found.")
            st.stop()
        session = TestSession(test, profile["id"], profile.get("email", ""), full_name(profile))
        st.session_state["test_session"] = session

    test = session.test
    st.header(test.title)

    if session.status == TestSession.STATUS_NOT_STARTED:
        st.write(test.description)
        show_image(test.image_url, width=400)
        st.caption(f"Time limit {test.time_limit} · pass at {test.passing_score}%")
        if st.button("Start test", type="primary"):
            session.start()
            st.rerun()
        st.stop()

    if session.is_completed:
        finish_attempt(session)
        render_result(session.result, session)
        if st.button("Back to dashboard"):
            st.session_state.pop("test_session", None)
            st.session_state.pop("active_test_id", None)
            go_to("Dashboard")
        st.stop()

    # Auto-submit when time runs out
    if session.is_expired():
        finish_attempt(session)
        st.rerun()

    summary = session.get_session_summary()
    st.sidebar.metric("Time left", format_time(summary["time_remaining_sec"]))
    st.sidebar.progress(session.progress())
    st.sidebar.caption(f"{summary['questions_answered']}/{summary['total_questions']} answered")

    question = session.current_question()
    if question is None:
        st.warning("This test has no visible questions.")
    else:
        st.subheader(f"Question {summary['current_question']} of {summary['total_questions']}")
        render_question(session, question)

    col1, col2, col3 = st.columns([1, 1, 2])
    with col1:
        if st.button("Previous", disabled=session.current_question_idx == 0):
            session.previous_question()
            st.rerun()
    with col2:
        if st.button("Next", disabled=session.current_question_idx >= summary["total_questions"] - 1):
            session.next_question()
            st.rerun()
    with col3:
        if st.button("Submit test", type="primary"):
            finish_attempt(session)
            st.rerun()


# ----- Results -----

def page_results(profile: dict):
    st.header("My results")
    titles = {t.id: t.title for t in db.list_tests()}
    results = db.get_results(user_id=profile["id"])
    if not results:
        st.info("No results yet.")
    rows = [
        {
            "Test": titles.get(r.test_id, "Deleted test"),
            "Score": f"{r.score:g}/{r.total_points}",
            "Percentage": r.percentage,
            "Passed": r.passed,
            "Time spent": format_time(r.time_spent),
            "Completed": r.completed_at[:16].replace("T", " "),
        }
        for r in results
    ]
    if rows:
        st.dataframe(rows, hide_index=True, use_container_width=True)

    if DEFAULT_SHEET_ID:
        st.subheader("Imported results")
        try:
            sheet_rows = load_results(email=profile.get("email", ""))
        except SheetImportError as e:
            st.warning(f"Could not load spreadsheet results: {e}")
            return
        if sheet_rows:
            st.dataframe(sheet_rows, hide_index=True, use_container_width=True)
        else:
            st.caption("No spreadsheet results for your email.")


# ----- Rank -----

def page_rank():
    st.header("Leaderboard")
    ranking = rank_users(db.list_users(), db.get_results())
    query = st.text_input("Search", placeholder="Name or email")
    rows = filter_by_query(ranking, query, ("first_name", "last_name", "email"))
    if not rows:
        st.info("Nobody to show yet. Enable “Show me in the leaderboard” on your profile to appear here.")
        return
    st.dataframe(
        [
            {
                "Rank": r["rank"],
                "Name": full_name(r),
                "Average": f"{r['average_score']}%",
                "Tests": r["tests_count"],
                "Passed": r["passed_count"],
            }
            for r in rows
        ],
        hide_index=True,
        use_container_width=True,
    )


# ----- Profile -----

def page_profile(profile: dict):
    st.header("Profile")
    show_image(profile.get("profile_image"), width=120)

    with st.form("profile"):
        first_name = st.text_input("First name", value=profile.get("first_name", ""))
        last_name = st.text_input("Last name", value=profile.get("last_name", ""))
        show_in_rank = st.toggle("Show me in the leaderboard", value=bool(profile.get("show_in_rank")))
        upload = st.file_uploader("Profile image (max 2 MB)", type=IMAGE_TYPES)
        submitted = st.form_submit_button("Save profile", type="primary")
    if submitted:
        fields = {"first_name": first_name.strip(), "last_name": last_name.strip(), "show_in_rank": show_in_rank}
        image = uploaded_image(upload)
        if image:
            fields["profile_image"] = image
        if not fields["first_name"] or not fields["last_name"]:
            st.error("First and last name are required.")
        else:
            try:
                db.update_user(profile["id"], fields)
                st.session_state["profile"] = {**profile, **fields}
                st.success("Profile saved.")
            except StorageError as e:
                st.error(str(e))

    st.subheader("Change password")
    with st.form("password", clear_on_submit=True):
        current = st.text_input("Current password", type="password")
        new = st.text_input("New password", type="password")
        confirm = st.text_input("Confirm new password", type="password")
        submitted = st.form_submit_button("Change password")
    if submitted:
        try:
            auth.change_password(profile["email"], current, new, confirm)
            st.success("Password changed.")
        except AuthError as e:
            st.error(str(e))


# ----- Admin Dashboard -----

def page_admin_dashboard():
    st.header("Admin dashboard")
    users, tests, results = db.list_users(), db.list_tests(), db.get_results()
    stats = admin_dashboard_stats(users, tests, results)
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Users", stats["total_users"])
    col2.metric("Tests", stats["total_tests"])
    col3.metric("Results", stats["total_results"])
    col4.metric("Pass rate", f"{stats['pass_rate']}%")

    if st.button("Create a new test", type="primary"):
        start_draft(TestDraft())
        go_to("Edit Test")

    st.subheader("Recent results")
    titles = {t.id: t.title for t in tests}
    st.dataframe(
        [
            {
                "User": r.user_name or r.user_email,
                "Test": titles.get(r.test_id, "Deleted test"),
                "Percentage": r.percentage,
                "Passed": r.passed,
                "Completed": r.completed_at[:16].replace("T", " "),
            }
            for r in results[:20]
        ],
        hide_index=True,
        use_container_width=True,
    )


# ----- Tests -----

def start_draft(draft: TestDraft):
    st.session_state["draft"] = draft
    st.session_state["draft_key"] = uuid4().hex[:8]
    start_question(None)


def start_question(question_draft: QuestionDraft | None):
    st.session_state["question_draft"] = question_draft or QuestionDraft()
    st.session_state["question_key"] = uuid4().hex[:8]


def page_tests():
    st.header("Tests")
    if st.button("New test", type="primary"):
        start_draft(TestDraft())
        go_to("Edit Test")

    query = st.text_input("Search tests", placeholder="Title or description")
    for test in filter_by_query(db.list_tests(), query, ("title", "description")):
        with st.container(border=True):
            col1, col2, col3 = st.columns([4, 1, 1])
            with col1:
                st.subheader(test.title)
                st.caption(f"{len(test.questions)} questions · {test.time_limit} · pass at {test.passing_score}%")
            with col2:
                if st.button("Edit", key=f"edit_{test.id}"):
                    start_draft(TestDraft.from_test(test))
                    go_to("Edit Test")
            with col3:
                confirm = st.checkbox("Confirm", key=f"confirm_{test.id}")
                if st.button("Delete", key=f"delete_{test.id}", disabled=not confirm):
                    try:
                        db.delete_test(test.id)
                        st.rerun()
                    except StorageError as e:
                        st.error(str(e))


def render_question_editor(draft: TestDraft, qd: QuestionDraft):
    qk = st.session_state["question_key"]
    st.subheader("Edit question" if qd.id else "New question")

    qtype = st.selectbox("Type", QUESTION_TYPES, index=QUESTION_TYPES.index(qd.type),
                         format_func=QUESTION_TYPE_LABELS.get, key=f"{qk}_type")
    if qtype != qd.type:
        qd.set_type(qtype)
        # new keys drop widget state left over from the previous type
        st.session_state["question_key"] = uuid4().hex[:8]
        st.rerun()
    qd.text = st.text_area("Question", value=qd.text, key=f"{qk}_text")
    qd.points = int(st.number_input("Points", min_value=1, value=max(1, qd.points), step=1, key=f"{qk}_points"))
    image = uploaded_image(st.file_uploader("Question image", type=IMAGE_TYPES, key=f"{qk}_image"))
    if image:
        qd.image_url = image

    if qd.is_choice:
        single = qd.type == SingleChoiceQuestion.type
        st.markdown("**Options**" if single else "**Options** (tick the correct answers)")
        if single and qd.options:
            ids = [o.id for o in qd.options]
            labels = {o.id: o.text for o in qd.options}
            current = qd.correct_answers[0] if qd.correct_answers and qd.correct_answers[0] in ids else None
            correct = st.radio("Correct answer", ids, index=ids.index(current) if current else None,
                               format_func=labels.get, horizontal=True, key=f"{qk}_correct")
            if correct and correct != current:
                qd.toggle_correct_answer(correct)
        for option in list(qd.options):
            col1, col2, col3 = st.columns([1, 6, 1])
            with col1:
                if not single:
                    is_correct = st.checkbox("✓", value=option.id in qd.correct_answers, key=f"{qk}_correct_{option.id}")
                    if is_correct != (option.id in qd.correct_answers):
                        qd.toggle_correct_answer(option.id)
            with col2:
                st.write(option.text)
                show_image(option.image_url, width=120)
            with col3:
                if st.button("Remove", key=f"{qk}_rm_{option.id}"):
                    qd.remove_option(option.id)
                    st.rerun()
        col1, col2 = st.columns([4, 1])
        with col1:
            option_text = st.text_input("New option", key=f"{qk}_new_option_{len(qd.options)}")
            option_image = uploaded_image(
                st.file_uploader("Option image", type=IMAGE_TYPES, key=f"{qk}_opt_image_{len(qd.options)}")
            )
        with col2:
            if st.button("Add option", key=f"{qk}_add_option"):
                try:
                    qd.add_option(option_text, option_image)
                    st.rerun()
                except ValidationError as e:
                    show_validation_errors(e)

        targets = draft.linkable_questions(qd.id)
        target_ids = [""] + [q.id for q in targets]
        texts = {q.id: q.text for q in targets}
        linked = st.selectbox(
            "Reveal another question when certain answers are chosen",
            target_ids,
            index=target_ids.index(qd.linked_question_id) if qd.linked_question_id in target_ids else 0,
            format_func=lambda qid: texts.get(qid, "— none —")[:80],
            key=f"{qk}_link",
        )
        if (linked or None) != qd.linked_question_id:
            qd.set_link(linked or None)
        if qd.linked_question_id:
            labels = {o.id: o.text for o in qd.options}
            chosen = st.multiselect("Answers that reveal it", list(labels), default=[a for a in qd.linked_answer_ids if a in labels],
                                    format_func=labels.get, key=f"{qk}_triggers")
            for option_id in set(chosen) ^ set(qd.linked_answer_ids):
                qd.toggle_linked_answer(option_id)

    elif qd.type == MatchingQuestion.type:
        st.markdown("**Pairs**")
        for i, pair in enumerate(list(qd.matching_pairs)):
            col1, col2 = st.columns([6, 1])
            col1.write(f"{pair.left} → {pair.right} ({pair.points} pt)")
            if col2.button("Remove", key=f"{qk}_rm_pair_{i}"):
                qd.remove_pair(i)
                st.rerun()
        n = len(qd.matching_pairs)
        col1, col2, col3, col4 = st.columns([3, 3, 1, 1])
        left = col1.text_input("Left", key=f"{qk}_left_{n}")
        right = col2.text_input("Right", key=f"{qk}_right_{n}")
        points = col3.number_input("Points", min_value=1, value=1, step=1, key=f"{qk}_pair_points_{n}")
        if col4.button("Add pair", key=f"{qk}_add_pair"):
            try:
                qd.add_pair(left, right, int(points))
                st.rerun()
            except ValidationError as e:
                show_validation_errors(e)

    col1, col2 = st.columns(2)
    with col1:
        if st.button("Save question", type="primary", key=f"{qk}_save"):
            try:
                draft.save_question(qd)
                start_question(None)
                st.rerun()
            except ValidationError as e:
                show_validation_errors(e)
    with col2:
        if st.button("Cancel", key=f"{qk}_cancel"):
            start_question(None)
            st.rerun()


def page_edit_test(profile: dict):
    if "draft" not in st.session_state:
        start_draft(TestDraft())
    draft: TestDraft = st.session_state["draft"]
    dk = st.session_state["draft_key"]
    st.header("Edit test" if draft.test_id else "New test")

    draft.title = st.text_input("Title", value=draft.title, key=f"{dk}_title")
    draft.description = st.text_area("Description", value=draft.description, key=f"{dk}_description")
    col1, col2, col3 = st.columns(3)
    draft.time_limit = col1.text_input("Time limit (mm:ss)", value=draft.time_limit, key=f"{dk}_time")
    draft.passing_score = int(col2.number_input("Passing score (%)", min_value=1, max_value=100,
                                                value=min(100, max(1, draft.passing_score)), key=f"{dk}_pass"))
    draft.shuffle_questions = col3.checkbox("Shuffle questions", value=draft.shuffle_questions, key=f"{dk}_shuffle")
    image = uploaded_image(st.file_uploader("Test image", type=IMAGE_TYPES, key=f"{dk}_image"))
    if image:
        draft.image_url = image
    show_image(draft.image_url, width=200)

    st.subheader(f"Questions ({len(draft.questions)})")
    texts = {q.id: q.text for q in draft.questions}
    for i, question in enumerate(draft.questions, 1):
        with st.container(border=True):
            col1, col2, col3 = st.columns([6, 1, 1])
            with col1:
                st.write(f"{i}. {question.text}")
                caption = f"{QUESTION_TYPE_LABELS[question.type]} · {question.points} pt"
                if question.linked_question_id:
                    caption += f" · reveals “{texts.get(question.linked_question_id, '?')[:40]}”"
                st.caption(caption)
            if col2.button("Edit", key=f"{dk}_edit_{question.id}"):
                start_question(draft.edit_question(question.id))
                st.rerun()
            if col3.button("Remove", key=f"{dk}_remove_{question.id}"):
                draft.remove_question(question.id)
                st.rerun()

    render_question_editor(draft, st.session_state["question_draft"])

    st.divider()
    if st.button("Save test", type="primary", use_container_width=True):
        try:
            test = draft.build()
            if draft.test_id:
                db.update_test(test)
            else:
                test = db.create_test(test, created_by=profile["id"])
            st.session_state.pop("draft", None)
            st.success(f"Saved “{test.title}”.")
            go_to("Tests")
        except ValidationError as e:
            show_validation_errors(e)
        except StorageError as e:
            st.error(str(e))


# ----- Admin Rank -----

def page_admin_rank():
    st.header("Rankings")
    ranking = admin_ranking(db.list_users(), db.get_results())
    query = st.text_input("Search", placeholder="Name or email")
    rows = filter_by_query(ranking, query, ("first_name", "last_name", "email"))
    st.dataframe(
        [
            {
                "Name": full_name(r),
                "Email": r["email"],
                "Total score": r["total_score"],
                "Tests completed": r["tests_completed"],
                "Average": round(r["average_score"], 1),
            }
            for r in rows
        ],
        hide_index=True,
        use_container_width=True,
    )


# ----- Settings -----

def page_settings():
    st.header("Site settings")
    long_fields = {"terms_and_conditions", "privacy_policy", "welcome_message"}
    with st.form("settings"):
        values = {}
        for name in DEFAULT_SETTINGS:
            label = name.replace("_", " ").capitalize()
            widget = st.text_area if name in long_fields else st.text_input
            values[name] = widget(label, value=settings.get(name, ""))
        submitted = st.form_submit_button("Save settings", type="primary")
    if submitted:
        try:
            db.update_settings(values)
            st.success("Settings saved.")
        except StorageError as e:
            st.error(str(e))


# ----- Navigation -----

profile = st.session_state.get("profile")
if not profile:
    page_login()
    st.stop()

is_admin = profile.get("role") == ROLE_ADMIN
pages = ADMIN_PAGES if is_admin else USER_PAGES
st.sidebar.title(settings["site_name"])
st.sidebar.caption(f"Signed in as {full_name(profile)}")
default_page = st.query_params.get("page", pages[0])
if default_page not in pages:
    # Admins never land on test-taking pages
    default_page = pages[0]
page = st.sidebar.radio("Navigate", pages, index=pages.index(default_page), label_visibility="collapsed")
st.query_params["page"] = page
if st.sidebar.button("Sign out"):
    auth.sign_out()
    logger.info(f"Signed out {profile.get('email')}")
    for key in ("profile", "test_session", "active_test_id", "draft", "question_draft"):
        st.session_state.pop(key, None)
    st.query_params.clear()
    st.rerun()
st.sidebar.caption(settings["footer_text"])

if page == "Dashboard":
    page_dashboard(profile)
elif page == "Take Test":
    page_take_test(profile)
elif page == "Results":
    page_results(profile)
elif page == "Rank":
    page_rank()
elif page == "Profile":
    page_profile(st.session_state["profile"])
elif page == "Admin Dashboard":
    page_admin_dashboard()
elif page == "Tests":
    page_tests()
elif page == "Edit Test":
    page_edit_test(profile)
elif page == "Admin Rank":
    page_admin_rank()
elif page == "Settings":
    page_settings()
