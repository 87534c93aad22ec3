import os
from datetime import date, datetime
from jinja2 import Environment, select_autoescape
import storage

_env = Environment(autoescape=select_autoescape(default=True, default_for_string=True))

PRESCRIPTION_TEMPLATE = _env.from_string("""<!DOCTYPE html>
<html>
<head>
    <title>Prescription - {{ number }}</title>
    <style>
        body { font-family: Arial, sans-serif; margin: 20px; }
        .header { text-align: center; border-bottom: 2px solid #333; padding-bottom: 10px; margin-bottom: 20px; }
        .patient-info, .doctor-info { display: inline-block; width: 48%; vertical-align: top; }
        table { width: 100%; border-collapse: collapse; margin: 10px 0; }
        th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }
        th { background-color: #f2f2f2; }
        .footer { margin-top: 30px; text-align: center; font-size: 12px; color: #666; }
    </style>
</head>
<body>
    <div class="header">
        <h1>HOSPITAL PRESCRIPTION</h1>
        <h2>Prescription #{{ number }}</h2>
    </div>
    <div class="prescription-info">
        <div class="patient-info">
            <h3>Patient Information</h3>
            <p><strong>Name:</strong> {{ patient_name }}</p>
            <p><strong>Date:</strong> {{ issued_on }}</p>
        </div>
        <div class="doctor-info">
            <h3>Doctor Information</h3>
            <p><strong>Name:</strong> {{ doctor_name }}</p>
            <p><strong>Specialty:</strong> {{ doctor_specialty }}</p>
        </div>
    </div>
    <div class="diagnosis"><h3>Diagnosis</h3><p>{{ diagnosis }}</p></div>
    <div class="symptoms"><h3>Symptoms</h3><p>{{ symptoms or "" }}</p></div>
{% if medicines %}
    <div class="medicines">
        <h3>Medicines</h3>
        <table>
            <tr><th>Medicine</th><th>Dosage</th><th>Frequency</th><th>Duration</th><th>Instructions</th></tr>
{% for m in medicines %}
            <tr><td>{{ m.medicine_name }}</td><td>{{ m.dosage or "" }}</td><td>{{ m.frequency or "" }}</td><td>{{ m.duration or "" }}</td><td>{{ m.instructions or "" }}</td></tr>
{% endfor %}
        </table>
    </div>
{% endif %}
{% if tests %}
    <div class="tests">
        <h3>Pathology Tests</h3>
        <table>
            <tr><th>Test Name</th><th>Urgency</th><th>Instructions</th></tr>
{% for t in tests %}
            <tr><td>{{ t.test_name }}</td><td>{{ t.urgency }}</td><td>{{ t.instructions or "" }}</td></tr>
{% endfor %}
        </table>
    </div>
{% endif %}
{% if notes %}
    <div class="notes"><h3>Additional Notes</h3><p>{{ notes }}</p></div>
{% endif %}
{% if follow_up_date %}
    <div class="follow-up"><h3>Follow-up</h3><p><strong>Follow-up Date:</strong> {{ follow_up_date }}</p></div>
{% endif %}
    <div class="footer">
        <p>This prescription is valid for 30 days from the date of issue.</p>
        <p>Generated on {{ generated_at }}</p>
    </div>
</body>
</html>
""")


def render_prescription(prescription) -> str:
    doctor = prescription.doctor
    issued = prescription.prescription_date or datetime.now()
    return PRESCRIPTION_TEMPLATE.render(
        number=prescription.prescription_number,
        patient_name=prescription.patient.user.name if prescription.patient else "N/A",
        doctor_name=doctor.user.name if doctor else "N/A",
        doctor_specialty=doctor.specialty if doctor else "",
        issued_on=issued.date() if isinstance(issued, datetime) else date.today(),
        diagnosis=prescription.diagnosis,
        symptoms=prescription.symptoms,
        notes=prescription.notes,
        follow_up_date=prescription.follow_up_date,
        medicines=prescription.medicines,
        tests=prescription.tests,
        generated_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
    )


def stage_prescription_document(prescription) -> dict:
    """Render the prescription next to its final ``prescription_<number>.html`` location.

    The rendered file stays under a ``.tmp`` name until ``publish_document`` moves it in place.
    """
    filename = f"prescription_{prescription.prescription_number}.html"
    filepath = storage.prescription_root() / filename
    staged = filepath.with_name(filename + ".tmp")
    staged.write_text(render_prescription(prescription), encoding="utf-8")
    return {"filename": filename, "filepath": filepath.as_posix(), "staged": staged.as_posix()}


def publish_document(document: dict):
    os.replace(document["staged"], document["filepath"])
