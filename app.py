"""
GBP Dashboard - Streamlit App
Overview, reviews, questions, posts and performance for the signed-in user
"""
import streamlit as st
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from plotly.subplots import make_subplots
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from gbp_dashboard import config
from gbp_dashboard.database import DatabaseManager
from gbp_dashboard.dashboard import DashboardService
from gbp_dashboard.errors import ActionResult, ErrorKind
from gbp_dashboard.events import DASHBOARD_REFRESH
from gbp_dashboard.posts import PostManager
from gbp_dashboard.questions import QuestionManager
from gbp_dashboard.reviews import ReviewManager
from gbp_dashboard.sync import SyncEngine

# ============================================================================
# CONFIGURATION & THEME
# ============================================================================

COLORS = {
    "green": "#0B6E4F",
    "dark_green": "#003D32",
    "light_green": "#A7C957",
    "teal": "#1F7A8C",
    "gray": "#5C7C89",
    "light_gray": "#E8ECEF",
    "red": "#D62728",
    "orange": "#FF7F0E",
    "yellow": "#FFD700",
    "white": "#FFFFFF",
    "text": "#20322F",
    "dark_bg": "#1a2f38",
    "dark_text": "#E8ECEF",
}

RATING_COLORS = {
    1: COLORS["red"],
    2: COLORS["orange"],
    3: COLORS["yellow"],
    4: COLORS["light_green"],
    5: COLORS["green"],
}

SEVERITY_ICONS = {"high": "🔴", "medium": "🟠", "low": "🟡"}

COLORWAY = [
    COLORS["green"], COLORS["teal"], COLORS["light_green"],
    COLORS["dark_green"], COLORS["gray"], COLORS["orange"]
]

st.set_page_config(
    page_title="GBP Dashboard",
    page_icon=None,
    layout="wide",
    initial_sidebar_state="expanded"
)


def get_plotly_layout(dark_mode: bool = False) -> dict:
    """Shared Plotly layout settings."""
    bg_color = COLORS["dark_bg"] if dark_mode else COLORS["white"]
    text_color = COLORS["dark_text"] if dark_mode else COLORS["text"]
    grid_color = "#3a5a6a" if dark_mode else COLORS["light_gray"]

    return dict(
        font=dict(family="Inter, Trebuchet MS, sans-serif", size=12, color=text_color),
        paper_bgcolor=bg_color,
        plot_bgcolor=bg_color,
        colorway=COLORWAY,
        margin=dict(l=50, r=30, t=60, b=50),
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="left", x=0, bgcolor="rgba(0,0,0,0)"),
        xaxis=dict(gridcolor=grid_color, zerolinecolor=grid_color),
        yaxis=dict(gridcolor=grid_color, zerolinecolor=grid_color),
    )


# ============================================================================
# SESSION STATE & SERVICES
# ============================================================================

def init_session_state():
    """Initialize all session state variables."""
    defaults = {
        "dark_mode": False,
        "user_id": config.DEFAULT_USER_ID or "",
        "days": 30,
        "location_id": None,
        "refresh_count": 0,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


init_session_state()


@st.cache_resource
def get_db() -> DatabaseManager:
    db = DatabaseManager()
    db.initialize_schema()
    # Any refresh event invalidates cached snapshots
    db.events.subscribe(DASHBOARD_REFRESH, lambda topic, payload: st.cache_data.clear())
    return db


def services() -> Dict[str, Any]:
    db = get_db()
    return {
        "dashboard": DashboardService(db),
        "reviews": ReviewManager(db),
        "questions": QuestionManager(db),
        "posts": PostManager(db),
        "sync": SyncEngine(db),
    }


@st.cache_data(ttl=300)
def load_overview(user_id: str, days: int) -> Dict[str, Any]:
    return DashboardService(get_db()).get_overview(user_id, days=days).to_dict()


@st.cache_data(ttl=300)
def load_performance(user_id: str, days: int, location_id: Optional[int]) -> Dict[str, Any]:
    return DashboardService(get_db()).get_performance(user_id, days=days, location_id=location_id).to_dict()


def notify(result: ActionResult):
    """Show an action result as a toast, with a reconnect hint for auth problems."""
    if result.success:
        st.success(result.message or "Done")
        return
    st.error(result.error or "Something went wrong")
    if result.kind == ErrorKind.AUTH_EXPIRED:
        st.info(f"Reconnect your Google account in {config.RECONNECT_LINK}")


# ============================================================================
# VISUALIZATION FUNCTIONS
# ============================================================================

def create_kpi_metrics(kpis: Dict[str, Any], comparison: str) -> None:
    """KPI metric cards with period-over-period change."""
    col1, col2, col3, col4 = st.columns(4)

    def delta(kpi: Dict[str, Any], suffix: str = "%") -> Optional[str]:
        change = kpi.get("change")
        return None if change is None else f"{change:+}{suffix} {comparison}"

    with col1:
        st.metric("Total Reviews", f"{kpis['totalReviews']['value']:,}", delta=delta(kpis["totalReviews"]))
    with col2:
        st.metric("Avg Rating", f"{kpis['averageRating']['value']:.1f}", delta=delta(kpis["averageRating"], ""))
    with col3:
        st.metric("Response Rate", f"{kpis['responseRate']['value']:.1f}%", delta=delta(kpis["responseRate"]))
    with col4:
        st.metric("Impressions", f"{kpis['impressions']['value']:,}", delta=delta(kpis["impressions"]))


def create_rating_distribution(distribution: Dict[Any, int], dark_mode: bool = False) -> go.Figure:
    """Bar chart of reviews per star rating."""
    stars = [int(k) for k in distribution]
    fig = go.Figure(data=[go.Bar(
        x=[f"{s}★" for s in stars],
        y=list(distribution.values()),
        marker_color=[RATING_COLORS.get(s, COLORS["gray"]) for s in stars],
        text=list(distribution.values()),
        textposition="outside",
    )])
    fig.update_layout(**get_plotly_layout(dark_mode))
    fig.update_layout(title="<b>Rating Distribution</b>", height=350, yaxis_title="Reviews")
    return fig


def create_health_gauge(score: int, dark_mode: bool = False) -> go.Figure:
    color = COLORS["green"] if score >= 80 else COLORS["orange"] if score >= 50 else COLORS["red"]
    fig = go.Figure(go.Indicator(
        mode="gauge+number",
        value=score,
        gauge=dict(axis=dict(range=[0, 100]), bar=dict(color=color)),
        title=dict(text="<b>Health Score</b>"),
    ))
    fig.update_layout(**get_plotly_layout(dark_mode))
    fig.update_layout(height=300)
    return fig


def create_impressions_chart(rows: List[Dict[str, Any]], dark_mode: bool = False) -> Optional[go.Figure]:
    """Stacked area of impressions by surface and device."""
    if not rows:
        return None
    df = pd.DataFrame(rows).melt(id_vars="date", var_name="Source", value_name="Impressions")
    df["Source"] = df["Source"].str.replace("BUSINESS_IMPRESSIONS_", "").str.replace("_", " ").str.title()

    fig = px.area(df, x="date", y="Impressions", color="Source", title="<b>Impressions Over Time</b>")
    fig.update_layout(**get_plotly_layout(dark_mode))
    fig.update_layout(height=400, xaxis_title="")
    return fig


def create_weekly_chart(week: List[Dict[str, Any]], dark_mode: bool = False) -> go.Figure:
    """Views as bars with clicks and calls on a secondary axis."""
    df = pd.DataFrame(week)
    fig = make_subplots(specs=[[{"secondary_y": True}]])

    fig.add_trace(
        go.Bar(x=df["day"], y=df["views"], name="Views", marker_color=COLORS["teal"], opacity=0.7),
        secondary_y=False,
    )
    for column, color in (("clicks", COLORS["light_green"]), ("calls", COLORS["orange"])):
        fig.add_trace(
            go.Scatter(x=df["day"], y=df[column], name=column.title(), mode="lines+markers",
                       line=dict(color=color, width=3)),
            secondary_y=True,
        )

    fig.update_layout(**get_plotly_layout(dark_mode))
    fig.update_layout(title="<b>Last 7 Days</b>", height=380)
    fig.update_yaxes(title_text="Views", secondary_y=False)
    fig.update_yaxes(title_text="Clicks / Calls", secondary_y=True)
    return fig


# ============================================================================
# SIDEBAR
# ============================================================================

def render_sidebar():
    st.sidebar.markdown("## GBP Dashboard")
    st.session_state.dark_mode = st.sidebar.toggle("Dark Mode", value=st.session_state.dark_mode)
    st.sidebar.markdown("---")

    st.session_state.user_id = st.sidebar.text_input("User ID", value=st.session_state.user_id)
    st.session_state.days = st.sidebar.radio(
        "Period", [7, 30, 90], index=[7, 30, 90].index(st.session_state.days),
        format_func=lambda d: f"Last {d} days", horizontal=True,
    )

    if not st.session_state.user_id:
        return

    locations = get_db().list_locations(st.session_state.user_id, include_archived=False)
    options = [None] + [loc["id"] for loc in locations]
    names = {loc["id"]: loc.get("location_name") or f"Location {loc['id']}" for loc in locations}
    st.session_state.location_id = st.sidebar.selectbox(
        "Location", options, format_func=lambda i: "All locations" if i is None else names[i]
    )

    st.sidebar.markdown("---")
    if st.sidebar.button("Sync all locations", use_container_width=True):
        with st.sidebar:
            with st.spinner("Syncing..."):
                notify(services()["sync"].sync_all_locations(st.session_state.user_id))
    if st.sidebar.button("Publish due posts", use_container_width=True):
        with st.sidebar:
            notify(services()["posts"].publish_due_posts(st.session_state.user_id))


# ============================================================================
# PAGES
# ============================================================================

def page_overview():
    st.markdown("### Overview")
    user_id = st.session_state.user_id
    dark_mode = st.session_state.dark_mode

    result = load_overview(user_id, st.session_state.days)
    if not result["success"]:
        st.error(result.get("error"))
        return
    snapshot = result["data"]

    create_kpi_metrics(snapshot["kpis"], snapshot["comparisonLabel"])
    st.markdown("---")

    col1, col2 = st.columns([1, 2])
    with col1:
        st.plotly_chart(create_health_gauge(snapshot["healthScore"], dark_mode), use_container_width=True)
    with col2:
        st.markdown("#### Needs attention")
        if not snapshot["bottlenecks"]:
            st.success("Nothing needs attention right now.")
        for item in snapshot["bottlenecks"]:
            st.markdown(f"{SEVERITY_ICONS.get(item['severity'], '')} **{item['type']}** - {item['message']}")

    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(
            create_rating_distribution(snapshot["reviewStats"]["ratingDistribution"], dark_mode),
            use_container_width=True,
        )
    with col2:
        st.markdown("#### Location highlights")
        for h in snapshot["locationHighlights"]:
            st.markdown(f"**{h['name']}** ({h['category']}) - {h['rating']:.1f}★, {h['reviewCount']} reviews")

    st.markdown("#### Locations")
    if snapshot["locations"]:
        df = pd.DataFrame(snapshot["locations"])
        columns = [c for c in ("location_name", "status", "health_score", "total_reviews", "avg_rating",
                               "pending_reviews", "unanswered_questions", "last_synced_at") if c in df.columns]
        st.dataframe(df[columns], use_container_width=True, hide_index=True)
    else:
        st.info("No locations yet. Connect an account with the CLI: gbp-dashboard connect ...")


def page_reviews():
    st.markdown("### Reviews")
    user_id = st.session_state.user_id
    reviews = services()["reviews"]

    col1, col2, col3 = st.columns(3)
    status = col1.selectbox("Status", [None, "pending", "in_progress", "responded", "replied", "flagged"],
                            format_func=lambda s: "All" if s is None else s)
    rating = col2.selectbox("Rating", [None, 5, 4, 3, 2, 1], format_func=lambda r: "All" if r is None else f"{r}★")
    search = col3.text_input("Search")

    result = reviews.get_reviews(
        user_id, location_id=st.session_state.location_id, status=status,
        rating=rating, search_query=search or None,
    )
    if not result.success:
        notify(result)
        return

    st.caption(f"{result.data['total']} reviews")
    for review in result.data["reviews"]:
        header = f"{'★' * (review.get('rating') or 0)} {review.get('reviewer_name') or 'Anonymous'} ({review.get('status')})"
        with st.expander(header):
            st.write(review.get("review_text") or "_No text_")
            if review.get("reply_text"):
                st.markdown(f"**Reply:** {review['reply_text']}")
                continue

            key = f"reply_{review['id']}"
            text = st.text_area("Reply", value=review.get("ai_suggested_reply") or "", key=key)
            c1, c2 = st.columns(2)
            if c1.button("Send reply", key=f"send_{review['id']}"):
                notify(reviews.reply_to_review(user_id, review["id"], text))
            if c2.button("Draft with AI", key=f"ai_{review['id']}"):
                notify(reviews.generate_ai_reply(user_id, review["id"]))


def page_questions():
    st.markdown("### Questions")
    user_id = st.session_state.user_id
    questions = services()["questions"]

    status = st.radio("Show", ["unanswered", "answered", "all"], horizontal=True)
    result = questions.get_questions(user_id, location_id=st.session_state.location_id, status=status)
    if not result.success:
        notify(result)
        return

    for question in result.data["questions"]:
        with st.expander(f"{question.get('question_text')} ({question.get('upvote_count') or 0} upvotes)"):
            if question.get("answer_text"):
                st.markdown(f"**Answer:** {question['answer_text']}")
                continue
            suggestion = questions.suggest_template(user_id, question.get("question_text") or "").data["template"]
            text = st.text_area(
                "Answer", value=(suggestion or {}).get("template_answer", ""), key=f"answer_{question['id']}"
            )
            if st.button("Post answer", key=f"post_{question['id']}"):
                notify(questions.answer_question(
                    user_id, question["id"], text, template_id=(suggestion or {}).get("id")
                ))


def page_posts():
    st.markdown("### Posts")
    user_id = st.session_state.user_id
    posts = services()["posts"]

    with st.form("new_post"):
        post_type = st.selectbox("Type", ["whats_new", "event", "offer", "product"])
        title = st.text_input("Title")
        description = st.text_area("Text")
        submitted = st.form_submit_button("Create post")
    if submitted:
        if st.session_state.location_id is None:
            st.warning("Pick a location in the sidebar first.")
        else:
            notify(posts.create_post(
                user_id, location_id=st.session_state.location_id, post_type=post_type,
                title=title or None, description=description,
            ))

    result = posts.get_posts(user_id, location_id=st.session_state.location_id)
    if result.success and result.data["posts"]:
        df = pd.DataFrame(result.data["posts"])
        st.dataframe(df[["id", "post_type", "status", "title", "content", "published_at"]],
                     use_container_width=True, hide_index=True)


def page_performance():
    st.markdown("### Performance")
    user_id = st.session_state.user_id
    dark_mode = st.session_state.dark_mode

    result = load_performance(user_id, st.session_state.days, st.session_state.location_id)
    if not result["success"]:
        st.error(result.get("error"))
        return
    perf = result["data"]

    col1, col2, col3 = st.columns(3)
    col1.metric("CTR", f"{perf['ctr']:.2f}%")
    col2.metric("Engagement", f"{perf['engagementRate']:.2f}%")
    col3.metric("Bookings", f"{perf['bookingsRate']:.2f}%")

    fig = create_impressions_chart(perf["impressionsByDate"], dark_mode)
    if fig:
        st.plotly_chart(fig, use_container_width=True)
    else:
        st.info("No performance data for this period yet.")

    st.markdown("#### Actions vs previous period")
    cols = st.columns(len(perf["comparison"]))
    for col, (metric, comp) in zip(cols, perf["comparison"].items()):
        col.metric(metric.replace("_", " ").title(), comp["current"], f"{comp['changePercent']:+}%")

    weekly = services()["dashboard"].get_weekly_performance(user_id, location_id=st.session_state.location_id)
    if weekly.success:
        st.plotly_chart(create_weekly_chart(weekly.data["data"], dark_mode), use_container_width=True)
        st.info(weekly.data["aiInsight"])


# ============================================================================
# MAIN APP
# ============================================================================

def main():
    """Main application entry point."""
    render_sidebar()

    if not st.session_state.user_id:
        st.info("Enter your user ID in the sidebar to load your dashboard.")
        return

    tabs = st.tabs(["Overview", "Reviews", "Questions", "Posts", "Performance"])
    with tabs[0]:
        page_overview()
    with tabs[1]:
        page_reviews()
    with tabs[2]:
        page_questions()
    with tabs[3]:
        page_posts()
    with tabs[4]:
        page_performance()


if __name__ == "__main__":
    main()
