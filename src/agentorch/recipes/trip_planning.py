"""Trip planning recipe — builds a multi-phase research/plan graph for a destination.

Phases:
1. parallel research (search nodes)
2. preference profile (structured)
3. data parsing (custom → code.exec)
4. itinerary optimization (custom)
5. booking links (structured)
6. final synthesis (answer, declared last)
"""

import json
from dataclasses import dataclass, field
from datetime import date

from agentorch.core.types import (
    Constraints,
    EdgeSpec,
    GraphSpec,
    NodeKind,
    NodeSpec,
    TaskSpec,
    TaskType,
)

BUDGETS = ("budget", "moderate", "luxury")
PACES = ("relaxed", "moderate", "packed")


def channel(node_id: str) -> str:
    """Placeholder for the latest output of ``node_id``."""
    return "{{channel:" + node_id + ".last}}"


@dataclass
class TripPreferences:
    cuisine: list[str] = field(default_factory=list)
    activities: list[str] = field(default_factory=list)
    pace: str = "moderate"
    dietary: list[str] = field(default_factory=list)
    accessibility: list[str] = field(default_factory=list)


@dataclass
class TripRequest:
    destination: str
    start_date: str  # YYYY-MM-DD
    end_date: str  # YYYY-MM-DD
    budget: str = "moderate"
    preferences: TripPreferences = field(default_factory=TripPreferences)
    travelers: int = 1

    def __post_init__(self) -> None:
        if self.budget not in BUDGETS:
            raise ValueError(f"budget must be one of {BUDGETS}, got {self.budget!r}")
        if self.preferences.pace not in PACES:
            raise ValueError(f"pace must be one of {PACES}, got {self.preferences.pace!r}")
        if self.days < 1:
            raise ValueError("end_date must not be before start_date")

    @property
    def days(self) -> int:
        start = date.fromisoformat(self.start_date)
        end = date.fromisoformat(self.end_date)
        return (end - start).days + 1

    def preference_context(self) -> str:
        p = self.preferences
        return json.dumps(
            {
                "budget": self.budget,
                "cuisine": p.cuisine,
                "activities": p.activities,
                "pace": p.pace,
                "dietary": p.dietary,
                "accessibility": p.accessibility,
                "travelers": self.travelers,
            }
        )


def _research_nodes(req: TripRequest) -> list[NodeSpec]:
    d = req.destination
    p = req.preferences
    queries = {
        "weather_research": ("Weather Research", f"{d} weather forecast {req.start_date} to {req.end_date} temperature precipitation"),
        "attractions_research": (
            "Attractions Research",
            f"{d} top attractions museums landmarks {' '.join(p.activities) or 'sightseeing'} ratings reviews",
        ),
        "restaurants_research": (
            "Restaurants Research",
            f"{d} best restaurants {' '.join(p.cuisine) or 'dining'} {' '.join(p.dietary)} ratings prices reviews",
        ),
        "hotels_research": (
            "Hotels Research",
            f"{d} hotels {req.budget} {' '.join(p.accessibility)} ratings prices location reviews",
        ),
        "transportation_research": ("Transportation Research", f"{d} public transportation metro bus taxi getting around"),
        "events_research": ("Events & Festivals Research", f"{d} events festivals concerts exhibitions {req.start_date} {req.end_date}"),
        "safety_tips_research": ("Safety Tips Research", f"{d} travel safety tips areas to avoid emergency numbers"),
    }
    return [
        NodeSpec(id=node_id, kind=NodeKind.SEARCH, label=label, prompt=" ".join(query.split()))
        for node_id, (label, query) in queries.items()
    ]


def _parse_node(node_id: str, label: str, source: str, fields: str, filters: str, limit: str, prefs: str) -> NodeSpec:
    prompt = f"""Parse the following data and extract the top results:
{channel(source)}

User preferences: {prefs}

Extract:
{fields}

Filter by:
{filters}

Sort by rating descending.
Return {limit} as a JSON array."""
    return NodeSpec(id=node_id, kind=NodeKind.CUSTOM, label=label, prompt=prompt)


def trip_planning_graph(req: TripRequest) -> GraphSpec:
    """Build the full trip planning graph (15 nodes, 20 edges)."""
    prefs = req.preference_context()
    days = req.days
    nodes = _research_nodes(req)

    nodes.append(
        NodeSpec(
            id="learn_preferences",
            kind=NodeKind.STRUCTURED,
            label="Learn User Preferences",
            prompt=f"""Analyze user preferences and generate a preference profile.

Input preferences: {prefs}

Return JSON with: budgetTier, cuisines (ranked), activities (ranked), pace, dietary, accessibility, travelers.""",
        )
    )

    nodes.append(
        NodeSpec(
            id="parse_weather",
            kind=NodeKind.CUSTOM,
            label="Parse Weather Data",
            prompt=f"""Parse weather forecast data and extract daily weather:
{channel("weather_research")}

For each day ({req.start_date} to {req.end_date}) extract: date, high/low temperature (F),
conditions, precipitation chance (%), and indoor vs outdoor recommendation.

Return a JSON array of daily weather objects.""",
        )
    )
    nodes.append(
        _parse_node(
            "parse_attractions", "Parse Attractions Data", "attractions_research",
            "- name, type, rating (1-5), priceLevel, duration (hours), address, description, bookingUrl",
            "- rating >= 4.0\n- user activity preferences\n- accessibility needs",
            "the top 20", prefs,
        )
    )
    nodes.append(
        _parse_node(
            "parse_restaurants", "Parse Restaurants Data", "restaurants_research",
            "- name, cuisine, rating (1-5), priceLevel (1-4), mealTypes, dietary, address, reservationUrl",
            "- rating >= 4.0\n- cuisine preferences\n- dietary restrictions\n- budget tier",
            "the top 30", prefs,
        )
    )
    nodes.append(
        _parse_node(
            "parse_hotels", "Parse Hotels Data", "hotels_research",
            "- name, rating (1-5), pricePerNight (USD), location, amenities, accessibility, bookingUrl",
            "- rating >= 4.0\n- budget tier\n- accessibility needs",
            "the top 10", prefs,
        )
    )

    nodes.append(
        NodeSpec(
            id="optimize_itinerary",
            kind=NodeKind.CUSTOM,
            label="Optimize Itinerary",
            prompt=f"""Create an optimized {days}-day itinerary for {req.destination}.

Inputs:
- Weather: {channel("parse_weather")}
- Attractions: {channel("parse_attractions")}
- Restaurants: {channel("parse_restaurants")}
- Hotels: {channel("parse_hotels")}
- Preferences: {prefs}

Distribute attractions across {days} days, schedule three meals per day, prefer indoor
activities on rainy days, match a {req.preferences.pace} pace, group nearby attractions and
leave free time.

Return a JSON array of days with: date, weather, hotel, activities, meals, notes.""",
        )
    )

    nodes.append(
        NodeSpec(
            id="generate_booking_links",
            kind=NodeKind.STRUCTURED,
            label="Generate Booking Links",
            prompt=f"""Generate booking links for the itinerary:
{channel("optimize_itinerary")}

Hotels: Booking.com, Expedia, Hotels.com. Restaurants: OpenTable, Resy, Yelp.
Attractions: GetYourGuide, Viator, official websites.

Return JSON with hotels, restaurants and attractions, each an array of {{name, links}}.""",
        )
    )

    nodes.append(
        NodeSpec(
            id="synthesize_plan",
            kind=NodeKind.ANSWER,
            label="Synthesize Final Trip Plan",
            prompt=f"""Create a comprehensive trip plan for {req.destination} ({req.start_date} to {req.end_date}).

Itinerary: {channel("optimize_itinerary")}
Booking Links: {channel("generate_booking_links")}
Transportation: {channel("transportation_research")}

Format as markdown with sections: Overview (duration {days} days, budget {req.budget},
travelers {req.travelers}), Day-by-Day Itinerary, Booking Summary, Transportation Guide,
Packing List, Budget Estimate.""",
        )
    )

    edges = [
        EdgeSpec("weather_research", "learn_preferences"),
        EdgeSpec("attractions_research", "learn_preferences"),
        EdgeSpec("restaurants_research", "learn_preferences"),
        EdgeSpec("hotels_research", "learn_preferences"),
        EdgeSpec("learn_preferences", "parse_weather"),
        EdgeSpec("learn_preferences", "parse_attractions"),
        EdgeSpec("learn_preferences", "parse_restaurants"),
        EdgeSpec("learn_preferences", "parse_hotels"),
        EdgeSpec("weather_research", "parse_weather"),
        EdgeSpec("attractions_research", "parse_attractions"),
        EdgeSpec("restaurants_research", "parse_restaurants"),
        EdgeSpec("hotels_research", "parse_hotels"),
        EdgeSpec("parse_weather", "optimize_itinerary"),
        EdgeSpec("parse_attractions", "optimize_itinerary"),
        EdgeSpec("parse_restaurants", "optimize_itinerary"),
        EdgeSpec("parse_hotels", "optimize_itinerary"),
        EdgeSpec("optimize_itinerary", "generate_booking_links"),
        EdgeSpec("generate_booking_links", "synthesize_plan"),
        EdgeSpec("optimize_itinerary", "synthesize_plan"),
        EdgeSpec("transportation_research", "synthesize_plan"),
    ]
    return GraphSpec(nodes=nodes, edges=edges)


def trip_planning(req: TripRequest) -> TaskSpec:
    return TaskSpec(
        goal=f"Plan a trip to {req.destination}",
        type=TaskType.CUSTOM,
        constraints=Constraints(max_steps=2),
        graph=trip_planning_graph(req),
        topic=f"{req.destination} trip {req.start_date} to {req.end_date}",
    )
