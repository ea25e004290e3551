"""Clinical Reference Data - Versioned lookup tables.

This module holds the fixed clinical tables the conflict detector and the
Tier-1 analyzers evaluate against: the drug-drug interaction table, the
drug-allergy cross-reactivity table, the high-risk medication patterns and
the standard adult lab reference ranges.

The tables are data, not control flow. Each entry is a frozen rule object
with a pure evaluation method, so the tables can be audited and tested on
their own and replaced by a real drug database without touching callers.

Security Impact:
    - These tables drive safety alerts; edits must bump REFERENCE_DATA_VERSION
    - NOT a production drug database; coverage is deliberately small

Architecture:
    - Pure data + pure functions, no I/O
"""

import re
from dataclasses import dataclass
from typing import Optional

from chart_reconcile.domain.enums import InteractionSeverity

REFERENCE_DATA_VERSION = "2024.1"

INTERACTION_DATA_SOURCE = "chart-reconcile clinical rules"


# ============================================================================
# Drug-drug interactions
# ============================================================================

@dataclass(frozen=True)
class InteractionRule:
    """One clinically significant drug-drug interaction.

    Attributes:
        drug_a: Pattern for the first drug's name
        drug_b: Pattern for the second drug's name
        severity: Interaction severity
        effect: Short clinical effect
        description: Full description
    """

    drug_a: re.Pattern
    drug_b: re.Pattern
    severity: InteractionSeverity
    effect: str
    description: str

    def orientation(self, name_a: str, name_b: str) -> Optional[bool]:
        """Match two drug names against the rule in either order.

        Returns:
            True if ``name_a`` matches drug_a and ``name_b`` matches drug_b,
            False if they match the other way round, None if neither ordering matches
        """
        if self.drug_a.search(name_a) and self.drug_b.search(name_b):
            return True
        if self.drug_a.search(name_b) and self.drug_b.search(name_a):
            return False
        return None


def _rx(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


INTERACTION_TABLE: tuple[InteractionRule, ...] = (
    # Critical
    InteractionRule(
        _rx(r"warfarin|coumadin"),
        _rx(r"aspirin|ibuprofen|naproxen|nsaid|advil|motrin|aleve"),
        InteractionSeverity.CRITICAL,
        "Increased bleeding risk",
        "Warfarin combined with NSAIDs or aspirin significantly increases the risk of "
        "gastrointestinal and other bleeding. This combination should be used with extreme caution.",
    ),
    InteractionRule(
        _rx(r"warfarin|coumadin"),
        _rx(r"fluconazole|metronidazole|flagyl"),
        InteractionSeverity.CRITICAL,
        "Warfarin levels dangerously increased",
        "These antifungal/antimicrobial agents inhibit warfarin metabolism, potentially causing "
        "dangerous elevations in INR and bleeding risk.",
    ),
    InteractionRule(
        _rx(r"methotrexate"),
        _rx(r"trimethoprim|bactrim|septra|sulfamethoxazole"),
        InteractionSeverity.CRITICAL,
        "Methotrexate toxicity risk",
        "Trimethoprim-sulfamethoxazole decreases methotrexate clearance, risking severe bone "
        "marrow suppression and organ toxicity.",
    ),
    InteractionRule(
        _rx(r"lithium"),
        _rx(r"ibuprofen|naproxen|nsaid|diclofenac|meloxicam|ketorolac"),
        InteractionSeverity.CRITICAL,
        "Lithium toxicity risk",
        "NSAIDs reduce lithium clearance, potentially causing lithium toxicity (tremor, "
        "confusion, seizures). Close monitoring required.",
    ),
    # High
    InteractionRule(
        _rx(r"metformin"),
        _rx(r"contrast|iodine"),
        InteractionSeverity.HIGH,
        "Lactic acidosis risk",
        "Metformin should be held before and after iodinated contrast procedures to reduce "
        "lactic acidosis risk.",
    ),
    InteractionRule(
        _rx(r"ace inhibitor|lisinopril|enalapril|ramipril|benazepril"),
        _rx(r"potassium|k-dur|klor-con|spironolactone"),
        InteractionSeverity.HIGH,
        "Hyperkalemia risk",
        "ACE inhibitors with potassium supplements or potassium-sparing diuretics can cause "
        "dangerously high potassium levels.",
    ),
    InteractionRule(
        _rx(r"ssri|sertraline|fluoxetine|paroxetine|citalopram|escitalopram"),
        _rx(r"tramadol|fentanyl|meperidine|maoi|selegiline|linezolid"),
        InteractionSeverity.HIGH,
        "Serotonin syndrome risk",
        "Combining serotonergic medications increases the risk of serotonin syndrome, a "
        "potentially life-threatening condition with agitation, hyperthermia, and muscle rigidity.",
    ),
    InteractionRule(
        _rx(r"statin|atorvastatin|simvastatin|rosuvastatin|lovastatin"),
        _rx(r"clarithromycin|erythromycin|itraconazole|ketoconazole"),
        InteractionSeverity.HIGH,
        "Increased statin levels (rhabdomyolysis risk)",
        "These inhibitors increase statin blood levels, raising the risk of muscle breakdown "
        "(rhabdomyolysis). Statin dose adjustment or alternative antibiotic may be needed.",
    ),
    InteractionRule(
        _rx(r"digoxin"),
        _rx(r"amiodarone|verapamil|quinidine"),
        InteractionSeverity.HIGH,
        "Digoxin toxicity risk",
        "These medications increase digoxin levels, potentially causing toxicity (nausea, "
        "vision changes, arrhythmias). Digoxin dose reduction typically needed.",
    ),
    InteractionRule(
        _rx(r"clopidogrel|plavix"),
        _rx(r"omeprazole|esomeprazole"),
        InteractionSeverity.HIGH,
        "Reduced clopidogrel effectiveness",
        "Omeprazole and esomeprazole inhibit the enzyme that activates clopidogrel, reducing "
        "its antiplatelet effect. Consider pantoprazole instead.",
    ),
    # Moderate
    InteractionRule(
        _rx(r"metformin"),
        _rx(r"prednisone|prednisolone|dexamethasone|methylprednisolone"),
        InteractionSeverity.MODERATE,
        "Reduced blood sugar control",
        "Corticosteroids raise blood sugar, counteracting metformin's glucose-lowering effect. "
        "Blood sugar monitoring should be increased.",
    ),
    InteractionRule(
        _rx(r"levothyroxine|synthroid"),
        _rx(r"calcium|iron|antacid|omeprazole|sucralfate"),
        InteractionSeverity.MODERATE,
        "Reduced thyroid medication absorption",
        "These medications can reduce levothyroxine absorption. Take levothyroxine 4 hours "
        "apart from these drugs.",
    ),
    InteractionRule(
        _rx(r"beta.?blocker|metoprolol|atenolol|propranolol|carvedilol"),
        _rx(r"verapamil|diltiazem"),
        InteractionSeverity.MODERATE,
        "Excessive heart rate lowering",
        "Both drugs slow heart rate. Together, they can cause dangerously slow pulse "
        "(bradycardia) or heart block.",
    ),
    InteractionRule(
        _rx(r"amlodipine|nifedipine"),
        _rx(r"simvastatin"),
        InteractionSeverity.MODERATE,
        "Increased simvastatin levels",
        "Amlodipine increases simvastatin levels. Simvastatin dose should not exceed 20mg "
        "when used with amlodipine.",
    ),
    InteractionRule(
        _rx(r"ciprofloxacin|levofloxacin"),
        _rx(r"antacid|calcium|iron|magnesium|zinc"),
        InteractionSeverity.MODERATE,
        "Reduced antibiotic absorption",
        "Metal-containing products chelate fluoroquinolones, reducing absorption. Separate "
        "by at least 2 hours.",
    ),
    InteractionRule(
        _rx(r"allopurinol"),
        _rx(r"azathioprine|mercaptopurine"),
        InteractionSeverity.HIGH,
        "Severe immunosuppression",
        "Allopurinol inhibits the breakdown of azathioprine/6-MP, potentially causing "
        "life-threatening bone marrow suppression. Dose reduction of 50-75% required.",
    ),
    InteractionRule(
        _rx(r"insulin"),
        _rx(r"beta.?blocker|metoprolol|atenolol|propranolol"),
        InteractionSeverity.MODERATE,
        "Masked hypoglycemia symptoms",
        "Beta-blockers can mask the symptoms of low blood sugar (tremor, rapid heartbeat), "
        "making hypoglycemia harder to detect.",
    ),
    InteractionRule(
        _rx(r"ssri|sertraline|fluoxetine|paroxetine|citalopram"),
        _rx(r"nsaid|ibuprofen|naproxen|aspirin"),
        InteractionSeverity.MODERATE,
        "Increased GI bleeding risk",
        "SSRIs reduce platelet function, and NSAIDs irritate the GI tract. Together, they "
        "increase the risk of gastrointestinal bleeding.",
    ),
    InteractionRule(
        _rx(r"thiazide|hydrochlorothiazide|chlorthalidone"),
        _rx(r"lithium"),
        InteractionSeverity.HIGH,
        "Lithium toxicity",
        "Thiazide diuretics decrease lithium clearance, increasing the risk of lithium "
        "toxicity. Requires close monitoring.",
    ),
)


# ============================================================================
# Drug-allergy cross-reactivity
# ============================================================================

@dataclass(frozen=True)
class CrossReactivityClass:
    """Drugs that should raise an alert when a patient is allergic to ``allergen``.

    Attributes:
        allergen: Substance fragment the allergy text must contain (lowercase)
        drugs: Lowercase drug-name fragments in the cross-reactive class
    """

    allergen: str
    drugs: tuple[str, ...]

    def applies_to(self, substance: str) -> bool:
        return self.allergen in substance.lower().strip()

    def matches_drug(self, medication_name: str) -> bool:
        name = medication_name.lower()
        return any(drug in name for drug in self.drugs)


DRUG_ALLERGY_CROSSREF: tuple[CrossReactivityClass, ...] = (
    CrossReactivityClass("penicillin", (
        "penicillin", "amoxicillin", "ampicillin", "augmentin", "amoxicillin-clavulanate",
        "ampicillin-sulbactam", "piperacillin", "piperacillin-tazobactam", "nafcillin",
        "oxacillin", "dicloxacillin", "ticarcillin",
        # cephalosporins, ~1-2% cross-reactivity
        "cephalexin", "cefazolin", "ceftriaxone", "cefdinir", "cefuroxime",
    )),
    CrossReactivityClass("sulfa", (
        "sulfamethoxazole", "trimethoprim-sulfamethoxazole", "bactrim", "septra",
        "sulfasalazine", "sulfadiazine", "dapsone",
    )),
    CrossReactivityClass("ibuprofen", (
        "ibuprofen", "advil", "motrin", "naproxen", "aleve", "diclofenac", "meloxicam",
        "ketorolac", "indomethacin", "piroxicam",
    )),
    CrossReactivityClass("aspirin", (
        "aspirin", "acetylsalicylic acid", "ibuprofen", "naproxen",
    )),
    CrossReactivityClass("cephalosporin", (
        "cephalexin", "cefazolin", "ceftriaxone", "cefdinir", "cefuroxime", "ceftazidime",
        "cefepime", "cefotaxime", "amoxicillin", "ampicillin",
    )),
)


# ============================================================================
# High-risk medications
# ============================================================================

@dataclass(frozen=True)
class HighRiskPattern:
    pattern: re.Pattern
    reason: str


HIGH_RISK_MED_PATTERNS: tuple[HighRiskPattern, ...] = (
    HighRiskPattern(_rx(r"warfarin|coumadin"), "anticoagulant (bleeding risk)"),
    HighRiskPattern(_rx(r"heparin|enoxaparin|lovenox"), "anticoagulant (bleeding risk)"),
    HighRiskPattern(_rx(r"rivaroxaban|apixaban|edoxaban|dabigatran"), "DOAC anticoagulant"),
    HighRiskPattern(
        _rx(r"prednisone|prednisolone|dexamethasone|methylprednisolone"),
        "corticosteroid (glucose, immune, bone)",
    ),
    HighRiskPattern(
        _rx(r"morphine|oxycodone|hydrocodone|fentanyl|codeine|tramadol"),
        "opioid (respiratory risk)",
    ),
    HighRiskPattern(_rx(r"digoxin"), "narrow therapeutic index"),
    HighRiskPattern(_rx(r"lithium"), "narrow therapeutic index"),
    HighRiskPattern(_rx(r"phenytoin|carbamazepine|valproic"), "antiepileptic (level monitoring)"),
    HighRiskPattern(_rx(r"methotrexate|cyclosporine|tacrolimus"), "immunosuppressant"),
    HighRiskPattern(_rx(r"insulin"), "insulin (hypoglycemia risk)"),
)


def high_risk_reason(medication_name: str) -> Optional[str]:
    """Return why a medication is high-risk, or None if it matches no pattern."""
    for entry in HIGH_RISK_MED_PATTERNS:
        if entry.pattern.search(medication_name):
            return entry.reason
    return None


# ============================================================================
# Standard adult lab reference ranges
# ============================================================================

@dataclass(frozen=True)
class StandardRange:
    low: float
    high: float
    unit: str


FALLBACK_RANGES: dict[str, StandardRange] = {
    # Metabolic
    "hemoglobin a1c": StandardRange(4.0, 5.6, "%"),
    "glucose": StandardRange(70, 100, "mg/dL"),
    "fasting glucose": StandardRange(70, 100, "mg/dL"),
    "bun": StandardRange(7, 20, "mg/dL"),
    "creatinine": StandardRange(0.6, 1.2, "mg/dL"),
    "egfr": StandardRange(60, 120, "mL/min/1.73m2"),
    "sodium": StandardRange(136, 145, "mmol/L"),
    "potassium": StandardRange(3.5, 5.0, "mmol/L"),
    "chloride": StandardRange(96, 106, "mmol/L"),
    "co2": StandardRange(23, 29, "mmol/L"),
    "calcium": StandardRange(8.5, 10.5, "mg/dL"),
    # Lipids
    "total cholesterol": StandardRange(0, 200, "mg/dL"),
    "ldl cholesterol": StandardRange(0, 100, "mg/dL"),
    "hdl cholesterol": StandardRange(40, 200, "mg/dL"),
    "triglycerides": StandardRange(0, 150, "mg/dL"),
    # CBC
    "hemoglobin": StandardRange(12.0, 17.5, "g/dL"),
    "hematocrit": StandardRange(36, 50, "%"),
    "wbc": StandardRange(4.5, 11.0, "x10^3/uL"),
    "white blood cell count": StandardRange(4.5, 11.0, "x10^3/uL"),
    "platelets": StandardRange(150, 400, "x10^3/uL"),
    "rbc": StandardRange(4.0, 5.5, "x10^6/uL"),
    # Liver
    "alt": StandardRange(7, 56, "U/L"),
    "ast": StandardRange(10, 40, "U/L"),
    "alkaline phosphatase": StandardRange(44, 147, "U/L"),
    "bilirubin": StandardRange(0.1, 1.2, "mg/dL"),
    "total bilirubin": StandardRange(0.1, 1.2, "mg/dL"),
    "albumin": StandardRange(3.5, 5.5, "g/dL"),
    # Thyroid
    "tsh": StandardRange(0.4, 4.0, "mIU/L"),
    "free t4": StandardRange(0.8, 1.8, "ng/dL"),
    # Other
    "vitamin d": StandardRange(30, 100, "ng/mL"),
    "ferritin": StandardRange(12, 300, "ng/mL"),
    "iron": StandardRange(60, 170, "mcg/dL"),
    "uric acid": StandardRange(3.0, 7.0, "mg/dL"),
}


def standard_range_for(test_name: str) -> Optional[StandardRange]:
    """Look up a standard adult range by normalized (lowercased, trimmed) test name."""
    return FALLBACK_RANGES.get(test_name.lower().strip())
