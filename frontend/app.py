# Streamlit UI that talks to the FastAPI backend
import base64
import os

import requests
import streamlit as st
from dotenv import load_dotenv

load_dotenv()

API = os.getenv("API_URL", "http://localhost:5000")

st.set_page_config(page_title="RFP Cloud (Streamlit)", layout="wide")
st.title("RFP Cloud")

tabs = st.tabs(["Create RFP", "Vendors", "Send RFP", "Inbound (simulate)", "Compare", "Unprocessed"])


def show_error(r):
    try:
        st.error(r.json().get("detail", r.text))
    except ValueError:
        st.error(r.text)


def rfp_options():
    r = requests.get(f"{API}/api/v1/rfps")
    rfps = r.json() if r.ok else []
    return {f"{x['id']} - {x.get('title', '')}": x["id"] for x in rfps}


# Create RFP
with tabs[0]:
    st.header("Create RFP (from natural language)")
    prompt = st.text_area("Describe procurement need:",
                          "I need 20 laptops (16GB RAM) and 15 monitors 27-inch. Budget $50,000. "
                          "Delivery within 30 days. Payment net 30. Warranty 1 year.",
                          height=200)
    col1, col2 = st.columns(2)
    if col1.button("Preview"):
        r = requests.post(f"{API}/api/v1/rfps/preview", json={"text": prompt})
        st.json(r.json()) if r.ok else show_error(r)
    if col2.button("Create RFP"):
        r = requests.post(f"{API}/api/v1/rfps", json={"text": prompt})
        if r.ok:
            st.success("RFP created")
            st.json(r.json())
        else:
            show_error(r)

# Vendors
with tabs[1]:
    st.header("Vendors")
    name = st.text_input("Name", value="Acme Co")
    email = st.text_input("Email", value="sales@acme-supplies.com")
    notes = st.text_input("Notes", value="")
    if st.button("Add Vendor"):
        r = requests.post(f"{API}/api/v1/vendors", json={"name": name, "email": email, "notes": notes or None})
        st.success("Added vendor") if r.ok else show_error(r)
    if st.button("Refresh vendor list"):
        r = requests.get(f"{API}/api/v1/vendors")
        if r.ok:
            st.json(r.json())

# Send RFP
with tabs[2]:
    st.header("Send RFP")
    rmap = rfp_options()
    sel_rfp_label = st.selectbox("Select RFP", options=list(rmap.keys()) if rmap else [], key="send_rfp")
    vendors_r = requests.get(f"{API}/api/v1/vendors")
    vendors = vendors_r.json() if vendors_r.ok else []
    vmap = {f"{v['name']} <{v['email']}>": v["id"] for v in vendors}
    sel_vendors = st.multiselect("Vendors to send to", options=list(vmap.keys()))
    if st.button("Send"):
        if not sel_rfp_label:
            st.error("Choose an RFP")
        else:
            rfp_id = rmap[sel_rfp_label]
            resp = requests.post(f"{API}/api/v1/rfps/{rfp_id}/send",
                                 json={"vendor_ids": [vmap[k] for k in sel_vendors]})
            if resp.ok:
                result = resp.json()
                st.success(f"Sent to {result['sent_count']} vendor(s)")
                if result["failed_vendors"]:
                    st.warning("Failed: " + ", ".join(result["failed_vendors"]))
            else:
                show_error(resp)
    if sel_rfp_label and st.button("Vendor status"):
        r = requests.get(f"{API}/api/v1/rfps/{rmap[sel_rfp_label]}/vendors")
        st.json(r.json()) if r.ok else show_error(r)

# Inbound simulate
with tabs[3]:
    st.header("Simulate inbound vendor reply (webhook)")
    from_email = st.text_input("From", value="Acme Sales <sales@acme-supplies.com>")
    subject = st.text_input("Subject (include RFP ID: <id> to link)", value="Re: RFP ID: ")
    body = st.text_area("Body", value="We can supply everything for $45,000. Delivery in 3 weeks. "
                                      "Payment Net 30. Warranty 2 years. Free installation.")
    upload = st.file_uploader("Attachment (text or CSV)", type=["txt", "csv"])
    if st.button("Submit inbound"):
        attachments = []
        if upload is not None:
            attachments.append({
                "filename": upload.name,
                "content_type": "text/csv" if upload.name.endswith(".csv") else "text/plain",
                "content": base64.b64encode(upload.getvalue()).decode(),
            })
        payload = {"from_email": from_email, "subject": subject, "text": body, "attachments": attachments}
        r = requests.post(f"{API}/api/v1/email/inbound", json=payload)
        result = r.json() if r.ok else {}
        if result.get("success"):
            st.success("Inbound processed")
        else:
            st.warning(result.get("error", r.text))
        st.json(result)

# Compare
with tabs[4]:
    st.header("Compare proposals for RFP")
    rmap = rfp_options()
    sel = st.selectbox("RFP", options=list(rmap.keys()) if rmap else [], key="compare_rfp")
    if st.button("Compare"):
        if not sel:
            st.error("Choose RFP")
        else:
            resp = requests.get(f"{API}/api/v1/rfps/{rmap[sel]}/compare")
            if resp.ok:
                data = resp.json()
                rows = [{"vendor": p["vendor_name"], "score": p["score"], "total": p["total_price"],
                         "evaluation": p["evaluation"]} for p in data["proposals"]]
                st.table(rows)
                if data.get("recommendation"):
                    st.subheader("Recommendation")
                    st.json(data["recommendation"])
            else:
                show_error(resp)

# Unprocessed emails / re-parse
with tabs[5]:
    st.header("Unprocessed or failed inbound emails")
    r = requests.get(f"{API}/api/v1/email/unprocessed")
    emails = r.json() if r.ok else []
    for e in emails:
        with st.expander(f"{e['from_email']} - {e['subject']}"):
            st.write(e.get("processing_error") or "not processed yet")
            st.code(e["raw_body"])
            if st.button("Re-parse", key=f"reparse-{e['id']}"):
                rr = requests.post(f"{API}/api/v1/email/{e['id']}/reparse")
                st.success("Re-parsed") if rr.ok else show_error(rr)
