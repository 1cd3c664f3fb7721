"""Built-in investment personas: curated signal sets, weights and analyst prompts."""

from typing import Dict, List, Optional

from .models import Persona

_RESPONSE_FORMAT = """Provide your analysis with:
1. Score (0-100)
2. Top 3 strengths
3. Top 3 concerns
4. Recommendation ({labels})
5. One-line summary"""

EARLY_STAGE = Persona(
    id="early",
    name="Early Stage VC",
    description="Pre-seed to Seed investors looking for exceptional founders",
    positive_tags=[
        "serial_founder", "prior_exit", "yc_alumni", "techstars_alumni",
        "unicorn_experience", "fortune_500_experience", "vc_backed_experience",
        "stanford_alumni", "mit_alumni", "harvard_alumni", "phd_holder",
        "technical_background", "product_leader", "growth_leader",
        "domain_expert", "repeat_ceo", "scaled_team", "raised_funding",
    ],
    negative_tags=[
        "no_linkedin", "career_gap", "short_tenure",
        "no_technical_background", "no_startup_experience",
    ],
    red_flag_tags=["stealth_only", "no_experience", "junior_level", "consultant_only"],
    weights={
        "serial_founder": 0.95, "prior_exit": 0.90, "yc_alumni": 0.85,
        "techstars_alumni": 0.80, "unicorn_experience": 0.85,
        "fortune_500_experience": 0.70, "vc_backed_experience": 0.75,
        "stanford_alumni": 0.65, "mit_alumni": 0.65, "harvard_alumni": 0.60,
        "phd_holder": 0.55, "technical_background": 0.70, "product_leader": 0.55,
        "growth_leader": 0.60, "domain_expert": 0.70, "repeat_ceo": 0.80,
        "scaled_team": 0.75, "raised_funding": 0.70,
        "no_linkedin": -0.30, "career_gap": -0.20, "short_tenure": -0.25,
        "no_technical_background": -0.15, "no_startup_experience": -0.40,
        "stealth_only": -0.50, "no_experience": -0.80, "junior_level": -0.60,
        "consultant_only": -0.35,
    },
    system_prompt=(
        "You are an Early Stage VC analyst evaluating founders for Pre-seed to Seed investments.\n\n"
        "EVALUATION CRITERIA:\n"
        "1. FOUNDER QUALITY (40%): Serial founders, prior exits, top-tier accelerator alumni (YC, Techstars)\n"
        "2. EXPERIENCE (30%): Unicorn/Fortune 500 experience, technical background, scaled teams before\n"
        "3. EDUCATION (15%): Top universities, PhDs in relevant fields\n"
        "4. SIGNALS (15%): Domain expertise, industry connections, previous fundraising success\n\n"
        + _RESPONSE_FORMAT.format(labels="STRONG_PASS / SOFT_PASS / BORDERLINE / PASS")
    ),
)

GROWTH_STAGE = Persona(
    id="growth",
    name="Growth Stage VC",
    description="Series A to C investors looking for proven operators",
    positive_tags=[
        "scaled_company", "revenue_growth", "team_builder", "market_leader",
        "category_creator", "enterprise_sales", "international_expansion",
        "public_company_experience", "board_experience", "cfo_experience",
        "coo_experience", "vp_engineering", "vp_sales", "vp_marketing",
        "ipo_experience",
    ],
    negative_tags=["early_stage_only", "no_scale_experience", "single_company", "small_team_only"],
    red_flag_tags=["no_revenue_experience", "no_enterprise_experience", "startup_hopper"],
    weights={
        "scaled_company": 0.90, "revenue_growth": 0.85, "team_builder": 0.80,
        "market_leader": 0.85, "category_creator": 0.90, "enterprise_sales": 0.75,
        "international_expansion": 0.70, "public_company_experience": 0.75,
        "board_experience": 0.80, "cfo_experience": 0.70, "coo_experience": 0.75,
        "vp_engineering": 0.70, "vp_sales": 0.70, "vp_marketing": 0.65,
        "ipo_experience": 0.85,
        "early_stage_only": -0.40, "no_scale_experience": -0.50,
        "single_company": -0.20, "small_team_only": -0.30,
        "no_revenue_experience": -0.60, "no_enterprise_experience": -0.35,
        "startup_hopper": -0.45,
    },
    system_prompt=(
        "You are a Growth Stage VC analyst evaluating executives for Series A to C investments.\n\n"
        "EVALUATION CRITERIA:\n"
        "1. SCALING EXPERIENCE (40%): Scaled companies from seed to growth, built large teams\n"
        "2. REVENUE/GTM (30%): Enterprise sales experience, international expansion, revenue growth\n"
        "3. LEADERSHIP (20%): C-suite experience, board roles, public company experience\n"
        "4. TRACK RECORD (10%): IPO experience, successful exits, category creation\n\n"
        + _RESPONSE_FORMAT.format(labels="STRONG_PASS / SOFT_PASS / BORDERLINE / PASS")
    ),
)

PRIVATE_EQUITY = Persona(
    id="pe",
    name="Private Equity",
    description="PE investors looking for operational excellence",
    positive_tags=[
        "fortune_500_executive", "turnaround_experience", "cost_optimization",
        "margin_improvement", "ma_experience", "integration_experience",
        "pe_backed_company", "ceo_experience", "cfo_experience",
        "coo_experience", "board_director", "industry_veteran",
        "operational_excellence", "ebitda_growth", "debt_management",
    ],
    negative_tags=["startup_only", "no_p_and_l", "no_board_exposure", "tech_only"],
    red_flag_tags=["no_corporate_experience", "junior_roles_only", "no_financial_acumen"],
    weights={
        "fortune_500_executive": 0.85, "turnaround_experience": 0.90,
        "cost_optimization": 0.80, "margin_improvement": 0.85,
        "ma_experience": 0.80, "integration_experience": 0.75,
        "pe_backed_company": 0.85, "ceo_experience": 0.90,
        "cfo_experience": 0.85, "coo_experience": 0.80, "board_director": 0.75,
        "industry_veteran": 0.70, "operational_excellence": 0.80,
        "ebitda_growth": 0.85, "debt_management": 0.70,
        "startup_only": -0.50, "no_p_and_l": -0.45, "no_board_exposure": -0.30,
        "tech_only": -0.25, "no_corporate_experience": -0.60,
        "junior_roles_only": -0.70, "no_financial_acumen": -0.55,
    },
    system_prompt=(
        "You are a Private Equity analyst evaluating executives for portfolio companies.\n\n"
        "EVALUATION CRITERIA:\n"
        "1. OPERATIONAL EXCELLENCE (35%): Cost optimization, margin improvement, turnaround experience\n"
        "2. FINANCIAL ACUMEN (30%): P&L ownership, EBITDA growth, debt management\n"
        "3. CORPORATE EXPERIENCE (25%): Fortune 500, PE-backed companies, M&A integration\n"
        "4. LEADERSHIP (10%): CEO/CFO/COO experience, board roles\n\n"
        + _RESPONSE_FORMAT.format(labels="STRONG_FIT / GOOD_FIT / MODERATE_FIT / NOT_FIT")
    ),
)

INVESTMENT_BANKING = Persona(
    id="ib",
    name="Investment Banker",
    description="IB professionals looking for M&A and IPO candidates",
    positive_tags=[
        "market_leader", "category_leader", "high_growth", "profitable",
        "recurring_revenue", "strategic_asset", "ipo_ready",
        "acquisition_target", "strong_moat", "network_effects", "platform_play",
        "roll_up_potential", "international_presence", "blue_chip_customers",
        "regulatory_advantage",
    ],
    negative_tags=["early_stage", "pre_revenue", "single_product", "concentrated_revenue"],
    red_flag_tags=["declining_growth", "no_clear_exit", "regulatory_risk", "founder_dependent"],
    weights={
        "market_leader": 0.90, "category_leader": 0.85, "high_growth": 0.80,
        "profitable": 0.85, "recurring_revenue": 0.80, "strategic_asset": 0.85,
        "ipo_ready": 0.90, "acquisition_target": 0.80, "strong_moat": 0.85,
        "network_effects": 0.80, "platform_play": 0.75,
        "roll_up_potential": 0.70, "international_presence": 0.70,
        "blue_chip_customers": 0.75, "regulatory_advantage": 0.70,
        "early_stage": -0.50, "pre_revenue": -0.60, "single_product": -0.30,
        "concentrated_revenue": -0.35, "declining_growth": -0.70,
        "no_clear_exit": -0.55, "regulatory_risk": -0.45,
        "founder_dependent": -0.40,
    },
    system_prompt=(
        "You are an Investment Banking analyst evaluating companies for M&A and IPO opportunities.\n\n"
        "EVALUATION CRITERIA:\n"
        "1. MARKET POSITION (35%): Market/category leader, strong moat, network effects\n"
        "2. FINANCIAL PROFILE (30%): Profitable, recurring revenue, high growth\n"
        "3. EXIT POTENTIAL (25%): IPO ready, strategic acquisition target, platform play\n"
        "4. RISK FACTORS (10%): Regulatory, concentration, founder dependency\n\n"
        + _RESPONSE_FORMAT.format(labels="PRIME_TARGET / GOOD_TARGET / WATCH_LIST / NOT_READY")
    ),
)

DEFAULT_PERSONAS: Dict[str, Persona] = {
    p.id: p for p in (EARLY_STAGE, GROWTH_STAGE, PRIVATE_EQUITY, INVESTMENT_BANKING)
}
DEFAULT_PERSONA_ID = EARLY_STAGE.id


def get_recipe(persona_id: str) -> Optional[Persona]:
    recipe = DEFAULT_PERSONAS.get(persona_id)
    return recipe.model_copy(deep=True) if recipe else None


def all_recipes() -> List[Persona]:
    return [p.model_copy(deep=True) for p in DEFAULT_PERSONAS.values()]
