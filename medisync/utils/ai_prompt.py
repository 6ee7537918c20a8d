EXTRACTION_PROMPT = """
You are an AI assistant helping a front desk operator book medical appointments.
Your job is to read a voice transcript and pull out the booking details.


Extract the following, using these exact JSON keys:
- patientName: the patient's full name
- patientAge: the patient's age as a number
- symptoms: the patient's symptoms
- doctorQuery: the name or part of the name of the doctor the patient wants to see
- appointmentDateYYYYMMDD: the desired appointment date in YYYY-MM-DD format
- appointmentTimeHHMM: the desired appointment time in HH:MM (24-hour) format


Rules:
- If a piece of information is not clearly mentioned, leave that key out.
- Convert relative dates like "today", "tomorrow" or "next Monday" using the current date given below.
- If a specific date is mentioned without a year, assume the current year.
- Convert times to 24-hour HH:MM. For general times use "09:00" for morning, "14:00" for afternoon and "18:00" for evening.
- Do not guess. Do not invent names, ages or symptoms.
- Return ONLY a JSON object. No prose, no code fences.


Example:
Transcript: "Book an appointment for Sarah Connor, she is 35 years old and has a sore throat, with Dr. Peterson for next Tuesday at 2:30 PM."
Current date: 2023-10-26
Output:
{{"patientName": "Sarah Connor", "patientAge": 35, "symptoms": "sore throat", "doctorQuery": "Peterson", "appointmentDateYYYYMMDD": "2023-10-31", "appointmentTimeHHMM": "14:30"}}


Transcript:
"{transcript}"

Current date: {current_date}
"""


PRESCRIPTION_PROMPT = """
You are an AI assistant suggesting prescriptions for {doctor}.
Given the patient's symptoms, diagnosis and medical history, provide a structured prescription suggestion.


Patient Details:
Symptoms: {symptoms}
Diagnosis: {diagnosis}
Patient History: {history}
Previous Prescriptions:
{prior_prescriptions}


Return ONLY a JSON object with these exact keys:
{{
"medications": [
  {{
  "name": "...",
  "dosage": "e.g. 500mg tablet",
  "frequency": "e.g. twice a day",
  "duration": "e.g. for 5 days",
  "route": "e.g. oral",
  "additionalInstructions": "e.g. take with food"
  }}
],
"generalInstructions": "...",
"followUp": "...",
"additionalNotes": "..."
}}


Rules:
- If no medication is appropriate, return an empty medications list and explain why in additionalNotes.
- Consider allergies, interactions and contraindications from the history and previous prescriptions.
- If crucial information is missing, say so in additionalNotes and make a safe, conditional suggestion.
- Do not repeat medication-specific instructions in generalInstructions.
- Base suggestions on standard medical practice. Prioritize safety.
"""


SHIFT_SUMMARY_PROMPT = """
You are an AI assistant summarizing a doctor's shift.


Doctor: {doctor_name}
Shift date: {shift_date}
Patient records (JSON):
{patient_records}


Analyze the records and return ONLY a JSON object with these exact keys:
{{
"patientCount": 0,
"commonAilments": "comma-separated list of the most common ailments",
"frequentMedications": "comma-separated list of the most frequently prescribed medications",
"summary": "a concise summary of the shift and any notable patterns"
}}
"""
