from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from urllib.parse import parse_qsl
import uuid

app = FastAPI(title="Mock Stripe Server", version="1.0.0")
# Amounts ending in 402 (minor units) are declined, mirroring Stripe's 402 card errors
DECLINE_SUFFIX = 402


async def read_form(request: Request) -> dict:
    body = (await request.body()).decode()
    return dict(parse_qsl(body, keep_blank_values=True))


def metadata_of(form: dict) -> dict:
    return {k[len("metadata["):-1]: v for k, v in form.items() if k.startswith("metadata[")}


class StripeError(HTTPException):
    """Error rendered in Stripe's {"error": {...}} body shape"""

    def __init__(self, status_code: int, error_type: str, code: str, message: str):
        super().__init__(status_code=status_code, detail=message)
        self.error = {"type": error_type, "code": code, "message": message}


@app.exception_handler(StripeError)
async def stripe_error_handler(request: Request, exc: StripeError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.error})


def require_auth(request: Request):
    if not request.headers.get("authorization", "").startswith("Bearer "):
        raise StripeError(401, "invalid_request_error", "api_key_missing", "You did not provide an API key.")


def require_positive(amount: int):
    if amount <= 0:
        raise StripeError(400, "invalid_request_error", "amount_too_small", "Amount must be at least 1.")


@app.get("/health")
def health(): return {"status": "ok"}

@app.post("/v1/checkout/sessions")
async def create_checkout_session(request: Request):
    require_auth(request)
    form = await read_form(request)
    amount = int(form.get("line_items[0][price_data][unit_amount]", 0))
    require_positive(amount)
    session_id = f"cs_test_{uuid.uuid4().hex[:24]}"
    return {
        "id": session_id,
        "object": "checkout.session",
        "url": f"https://checkout.stripe.test/pay/{session_id}",
        "payment_intent": f"pi_{uuid.uuid4().hex[:24]}",
        "amount_total": amount,
        "currency": form.get("line_items[0][price_data][currency]"),
        "metadata": metadata_of(form),
        "success_url": form.get("success_url"),
        "cancel_url": form.get("cancel_url"),
    }

@app.post("/v1/payment_intents")
async def create_payment_intent(request: Request):
    require_auth(request)
    form = await read_form(request)
    amount = int(form.get("amount", 0))
    require_positive(amount)
    if amount % 1000 == DECLINE_SUFFIX:
        raise StripeError(402, "card_error", "card_declined", "Your card was declined.")
    return {
        "id": f"pi_{uuid.uuid4().hex[:24]}",
        "object": "payment_intent",
        "amount": amount,
        "currency": form.get("currency"),
        "status": "requires_confirmation",
        "metadata": metadata_of(form),
    }
