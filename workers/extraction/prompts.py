"""
Prompts for biomarker extraction.

A single structured prompt is used for both text and vision requests;
text requests get the document text appended under a file header.
"""

# Primary extraction prompt - patient demographics plus every biomarker
EXTRACTION_PROMPT = """
You are an expert health data analyst specializing in clinical pathology and nutritional biochemistry.

Your task is to extract PATIENT INFORMATION and ALL biomarker values from the provided laboratory result.

INSTRUCTIONS:
1. Carefully scan all pages of the provided document
2. Extract PATIENT DEMOGRAPHIC INFORMATION:
   - Patient's full name (as shown on the lab report)
   - Patient's date of birth (convert to YYYY-MM-DD format)
   - Patient's gender/sex (male, female, or other)
   - Test/collection date (the most recent date if multiple reports, in YYYY-MM-DD format)
3. Extract EVERY biomarker name, its numerical value, and unit of measurement
4. If a biomarker appears multiple times, use the MOST RECENT value (check dates on the reports)
5. Include ALL of these biomarkers if present:
   - Liver Function: ALP, ALT, AST, GGT, Total Bilirubin
   - Kidney Function: BUN, Creatinine, eGFR
   - Proteins: Albumin, Globulin, Total Protein
   - Electrolytes: Sodium, Potassium, Chloride, Bicarbonate, CO2
   - Minerals: Calcium, Magnesium, Phosphate
   - Complete Blood Count: WBC, RBC, Hemoglobin, Hematocrit, MCV, MCH, MCHC, RDW, Platelets
   - White Blood Cell Differential: Neutrophils, Lymphocytes, Monocytes, Eosinophils, Basophils
   - Lipids: Total Cholesterol, HDL, LDL, Triglycerides
   - Metabolic: Fasting Glucose, HbA1c, Fasting Insulin
   - Hormones: TSH, Free T3, Free T4, SHBG
   - Thyroid Antibodies: TPO Antibodies, Thyroglobulin Antibodies
   - Iron Studies: Serum Iron, Ferritin, TIBC, Transferrin Saturation
   - Vitamins: Vitamin D (25-Hydroxy D), Vitamin B12, Folate
   - Other: Homocysteine, LDH

6. Return ONLY a valid JSON object with this EXACT structure:
{
  "patientInfo": {
    "name": "Patient Full Name or null if not found",
    "dateOfBirth": "YYYY-MM-DD or null if not found",
    "gender": "male, female, other, or null if not found",
    "testDate": "YYYY-MM-DD or null if not found"
  },
  "biomarkers": [
    {
      "name": "Biomarker Name",
      "value": "numerical value only",
      "unit": "unit of measurement"
    }
  ]
}

IMPORTANT RULES:
- Use the EXACT biomarker names as they appear in the lab report
- Extract ONLY numerical values for biomarkers (no text descriptions)
- Include the unit exactly as shown
- If a value is marked as "<0.1" or similar, extract "0.1" and note it in the unit
- For dates, always convert to YYYY-MM-DD format
- For gender, normalize to: "male", "female", or "other"
- If patient info is not found, use null
- Do NOT include any explanatory text, only the JSON object
- Ensure the JSON is valid and parseable

Return your response now:
"""


def get_text_prompt(file_name: str, page_count: int, text: str) -> str:
    """Prompt for a text-layer document."""
    return (
        f"{EXTRACTION_PROMPT.strip()}\n\n"
        f"=== {file_name} ({page_count} pages) ===\n{text}"
    )


def get_vision_prompt() -> str:
    """Prompt sent alongside page images."""
    return EXTRACTION_PROMPT.strip()
